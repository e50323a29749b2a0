"""Tests for the risk adjustment ledger."""

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ValidationException
from app.models import risk_adjustments
from app.schemas.assessments import (
    AssessmentValidate,
    RiskAdjustmentCreate,
    RiskLevel,
)
from app.services.assessment_service import AssessmentWorkflow
from app.services.risk_ledger import is_alert, risk_level_for
from tests.factories import assessment_payload


@pytest.mark.parametrize(
    ("score", "level"),
    [
        (0, RiskLevel.LOW),
        (39, RiskLevel.LOW),
        (40, RiskLevel.MODERATE),
        (69, RiskLevel.MODERATE),
        (70, RiskLevel.HIGH),
        (100, RiskLevel.HIGH),
    ],
)
def test_risk_level_bands(score: int, level: RiskLevel) -> None:
    assert risk_level_for(score) == level


def test_alert_on_threshold_or_band_change() -> None:
    """Alert when the move reaches the threshold or the band changes."""
    # Same band, below threshold
    assert is_alert(5, "Moderate", "Moderate") is False
    # Same band, at threshold
    assert is_alert(-20, "Low", "Low") is True
    # Small move across a band boundary
    assert is_alert(2, "Moderate", "High") is True


def test_first_entry_never_alerts() -> None:
    assert is_alert(None, None, "High") is False


async def _in_review(workflow: AssessmentWorkflow, clinician, score: int = 65):
    assessment = await workflow.intake(assessment_payload(score=score), clinician)
    return await workflow.open_review(assessment.id, clinician)


@pytest.mark.asyncio
async def test_validation_with_changed_score_writes_ledger_entry(
    db_session, events, publisher, clinician
) -> None:
    """Validating 65 (Moderate) as 78 (High) records one alerting entry."""
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await workflow.intake(assessment_payload(score=65), clinician)

    validated = await workflow.validate(
        assessment.id,
        clinician,
        AssessmentValidate(
            validated_risk_score=78,
            notes="symptom escalation",
            agrees_with_ml=False,
        ),
    )

    history = await workflow.risk_adjustments(assessment.id)
    assert len(history) == 1
    entry = history[0]
    assert entry.old_score == 65
    assert entry.new_score == 78
    assert entry.difference == 13
    assert entry.alert_triggered is True
    assert entry.justification == "symptom escalation"

    assert validated.status == "validated"
    assert validated.final_risk_level == RiskLevel.HIGH
    assert validated.current_risk_score == 78
    assert "risk_adjusted" in publisher.types()


@pytest.mark.asyncio
async def test_empty_justification_rejected_without_side_effects(
    db_session, events, clinician
) -> None:
    """A blank justification is refused and leaves the score and ledger untouched."""
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await _in_review(workflow, clinician)

    with pytest.raises(ValidationException):
        await workflow.adjust_risk(
            assessment.id,
            clinician,
            RiskAdjustmentCreate(new_risk_score=80, justification="   "),
        )

    count = await db_session.scalar(
        select(func.count())
        .select_from(risk_adjustments)
        .where(risk_adjustments.c.assessment_id == assessment.id)
    )
    assert count == 0
    reloaded = await workflow.get_assessment(assessment.id)
    assert reloaded.current_risk_score == 65


@pytest.mark.asyncio
async def test_ledger_differences_sum_to_net_change(db_session, events, clinician) -> None:
    """Entries chain old to new and their differences add up to the net change."""
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await _in_review(workflow, clinician, score=30)

    for score in (45, 41, 90, 12):
        await workflow.adjust_risk(
            assessment.id,
            clinician,
            RiskAdjustmentCreate(new_risk_score=score, justification=f"re-read vitals -> {score}"),
        )

    history = await workflow.risk_adjustments(assessment.id)
    assert [entry.new_score for entry in history] == [45, 41, 90, 12]
    for previous, current in zip(history, history[1:]):
        assert current.old_score == previous.new_score
    assert sum(entry.difference for entry in history) == 12 - 30

    current = await workflow.get_assessment(assessment.id)
    assert current.current_risk_score == history[-1].new_score


@pytest.mark.asyncio
async def test_adjustment_reports_alert_and_stays_in_review(db_session, events, clinician) -> None:
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await _in_review(workflow, clinician, score=50)

    small = await workflow.adjust_risk(
        assessment.id,
        clinician,
        RiskAdjustmentCreate(new_risk_score=55, justification="minor"),
    )
    large = await workflow.adjust_risk(
        assessment.id,
        clinician,
        RiskAdjustmentCreate(new_risk_score=30, justification="lab results normal"),
    )

    assert small.alert_triggered is False
    assert small.difference == 5
    assert large.alert_triggered is True
    assert large.new_level == RiskLevel.LOW
    assert large.assessment_status == "in_review"


@pytest.mark.asyncio
async def test_adjust_to_same_score_is_refused(db_session, events, clinician) -> None:
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await _in_review(workflow, clinician, score=50)

    with pytest.raises(ValidationException):
        await workflow.adjust_risk(
            assessment.id,
            clinician,
            RiskAdjustmentCreate(new_risk_score=50, justification="no change"),
        )
