"""Tests for the workflow event outbox."""

import pytest
from httpx import AsyncClient

from app.core.exceptions import IllegalTransitionException
from app.repositories import events as event_repo
from app.schemas.assessments import RiskAdjustmentCreate
from app.schemas.common import RequestMetadata
from app.schemas.events import EntityType
from app.services.assessment_service import AssessmentWorkflow
from app.services.event_service import (
    WorkflowEventRecorder,
    list_entity_events,
    relay_unpublished,
)
from tests.conftest import RecordingPublisher
from tests.factories import assessment_payload


@pytest.mark.asyncio
async def test_committed_events_are_published_and_stamped(db_session, events, publisher, clinician):
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await workflow.intake(assessment_payload(), clinician)
    await workflow.open_review(assessment.id, clinician)

    assert publisher.types() == ["assessment_received", "assessment_review_opened"]
    assert await event_repo.count_unpublished(db_session) == 0

    stored = await list_entity_events(db_session, EntityType.ASSESSMENT, assessment.id)
    assert [event.event_type for event in stored] == publisher.types()
    assert stored[1].from_status == "pending"
    assert stored[1].to_status == "in_review"
    assert stored[1].actor_id == clinician.id


@pytest.mark.asyncio
async def test_rolled_back_transition_records_no_event(db_session, events, publisher, clinician):
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await workflow.intake(assessment_payload(), clinician)

    with pytest.raises(IllegalTransitionException):
        await workflow.complete(assessment.id, clinician)

    assert publisher.types() == ["assessment_received"]
    assert events.pending == []
    stored = await list_entity_events(db_session, EntityType.ASSESSMENT, assessment.id)
    assert len(stored) == 1


@pytest.mark.asyncio
async def test_publisher_failure_keeps_transition_and_relay_retries(db_session, clinician):
    """The transition commits even when publishing fails; the relay delivers it later."""
    failing = RecordingPublisher(fail=True)
    workflow = AssessmentWorkflow(db_session, WorkflowEventRecorder(db_session, failing))

    assessment = await workflow.intake(assessment_payload(), clinician)

    assert (await workflow.get_assessment(assessment.id)).status == "pending"
    assert await event_repo.count_unpublished(db_session) == 1

    healthy = RecordingPublisher()
    assert await relay_unpublished(db_session, healthy) == 1
    assert healthy.types() == ["assessment_received"]
    assert await event_repo.count_unpublished(db_session) == 0
    assert await relay_unpublished(db_session, healthy) == 0


@pytest.mark.asyncio
async def test_risk_event_carries_alert_flag(db_session, events, publisher, clinician):
    workflow = AssessmentWorkflow(db_session, events)
    assessment = await workflow.intake(assessment_payload(score=30), clinician)
    await workflow.open_review(assessment.id, clinician)

    await workflow.adjust_risk(
        assessment.id,
        clinician,
        RiskAdjustmentCreate(new_risk_score=75, justification="new ecg findings"),
    )

    risk_event = publisher.events[-1]
    assert risk_event.event_type == "risk_adjusted"
    assert risk_event.alert_triggered is True
    assert risk_event.payload["old_score"] == 30
    assert risk_event.payload["new_score"] == 75
    assert risk_event.payload["difference"] == 45


@pytest.mark.asyncio
async def test_events_endpoint(client: AsyncClient, auth_headers: dict):
    response = await client.post(
        "/api/v1/assessments/",
        json={"external_id": "events-1", "ml_risk_score": 33},
        headers=auth_headers,
    )
    assessment_id = response.json()["id"]

    response = await client.get(
        "/api/v1/events/",
        params={"entity_type": "assessment", "entity_id": assessment_id},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert [event["event_type"] for event in body] == ["assessment_received"]
    assert body[0]["to_status"] == "pending"


@pytest.mark.asyncio
async def test_outbox_rows_keep_request_context(db_session, events, publisher, clinician):
    workflow = AssessmentWorkflow(db_session, events)
    request = RequestMetadata(
        ip_address="192.0.2.10", user_agent="ward-tablet/3.1", request_id="req-77"
    )
    assessment = await workflow.intake(assessment_payload(), clinician)

    await workflow.open_review(assessment.id, clinician, request)

    assert publisher.events[0].request_id is None
    assert publisher.events[-1].request_id == "req-77"
    rows = await event_repo.list_for_entity(db_session, "assessment", assessment.id)
    assert rows[-1]["ip_address"] == "192.0.2.10"
    assert rows[-1]["user_agent"] == "ward-tablet/3.1"


@pytest.mark.asyncio
async def test_request_id_header_reaches_outbox(client: AsyncClient, auth_headers: dict):
    response = await client.post(
        "/api/v1/assessments/",
        json={"external_id": "events-req", "ml_risk_score": 48},
        headers={**auth_headers, "X-Request-ID": "sync-batch-9"},
    )
    assessment_id = response.json()["id"]

    response = await client.get(
        "/api/v1/events/",
        params={"entity_type": "assessment", "entity_id": assessment_id},
        headers=auth_headers,
    )

    assert response.json()[0]["request_id"] == "sync-batch-9"
