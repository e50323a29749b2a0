"""Tests for the referral workflow."""

from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.core.exceptions import IllegalTransitionException, ValidationException
from app.schemas.appointments import AppointmentStatus, BookingSource
from app.schemas.assessments import AssessmentReject, AssessmentValidate
from app.schemas.common import RequestMetadata
from app.schemas.referrals import (
    ReferralAccept,
    ReferralAction,
    ReferralComplete,
    ReferralCreate,
    ReferralEscalate,
    ReferralFilters,
    ReferralNote,
    ReferralOutcome,
    ReferralPriority,
    ReferralReason,
    ReferralReject,
    ReferralSchedule,
    ReferralStatus,
    ReferralTransit,
    ReferralUrgency,
    TransportMethod,
)
from app.services.appointment_service import AppointmentScheduler
from app.services.assessment_service import AssessmentWorkflow
from app.services.availability_service import AvailabilityService
from app.services.referral_service import REFERRAL_TRANSITIONS, ReferralWorkflow, classify
from tests.factories import assessment_payload, at


async def _assessment(db_session, events, clinician, score: int = 65, symptoms=None):
    workflow = AssessmentWorkflow(db_session, events)
    return await workflow.intake(assessment_payload(score=score, symptoms=symptoms), clinician)


async def _pending_referral(workflow: ReferralWorkflow, db_session, events, clinician, facility_id):
    assessment = await _assessment(db_session, events, clinician)
    return await workflow.create(
        ReferralCreate(assessment_id=assessment.id, target_facility_id=facility_id),
        clinician,
    )


@pytest.mark.parametrize(
    ("score", "priority", "urgency"),
    [
        (90, ReferralPriority.CRITICAL, ReferralUrgency.EMERGENCY),
        (75, ReferralPriority.CRITICAL, ReferralUrgency.EMERGENCY),
        (60, ReferralPriority.HIGH, ReferralUrgency.URGENT),
        (30, ReferralPriority.MEDIUM, ReferralUrgency.ROUTINE),
        (10, ReferralPriority.LOW, ReferralUrgency.ROUTINE),
    ],
)
def test_classify_by_score(score, priority, urgency):
    derived = classify(score)
    assert derived["priority"] == priority
    assert derived["urgency"] == urgency


def test_emergency_symptom_overrides_urgency():
    derived = classify(30, ["Chest Pain "])
    assert derived["priority"] == ReferralPriority.MEDIUM
    assert derived["urgency"] == ReferralUrgency.EMERGENCY


@pytest.mark.asyncio
async def test_create_derives_classification_from_assessment(
    db_session, events, locks, clinician, facility_id
):
    assessment = await _assessment(db_session, events, clinician, score=82)
    workflow = ReferralWorkflow(db_session, events, locks)

    referral = await workflow.create(
        ReferralCreate(assessment_id=assessment.id, target_facility_id=facility_id),
        clinician,
    )

    assert referral.status == ReferralStatus.PENDING
    assert referral.priority == ReferralPriority.CRITICAL
    assert referral.urgency == ReferralUrgency.EMERGENCY
    assert referral.patient_first_name == "Kwame"
    history = await workflow.history(referral.id)
    assert [row.action for row in history] == [ReferralAction.CREATED]
    assert history[0].previous_status is None


@pytest.mark.asyncio
async def test_create_refuses_rejected_assessment(db_session, events, locks, clinician, facility_id):
    assessment = await _assessment(db_session, events, clinician)
    await AssessmentWorkflow(db_session, events).reject(
        assessment.id, clinician, AssessmentReject(reason="sensor fault")
    )

    with pytest.raises(ValidationException):
        await ReferralWorkflow(db_session, events, locks).create(
            ReferralCreate(assessment_id=assessment.id, target_facility_id=facility_id),
            clinician,
        )


@pytest.mark.asyncio
async def test_create_uses_validated_score(db_session, events, locks, clinician, facility_id):
    assessment = await _assessment(db_session, events, clinician, score=20)
    await AssessmentWorkflow(db_session, events).validate(
        assessment.id,
        clinician,
        AssessmentValidate(validated_risk_score=55, notes="ecg changes", agrees_with_ml=False),
    )

    referral = await ReferralWorkflow(db_session, events, locks).create(
        ReferralCreate(assessment_id=assessment.id, target_facility_id=facility_id),
        clinician,
    )

    assert referral.priority == ReferralPriority.HIGH


@pytest.mark.asyncio
async def test_full_lifecycle_writes_history(db_session, events, locks, clinician, facility_id):
    """Every transition appends one history row; history reads newest first."""
    workflow = ReferralWorkflow(db_session, events, locks)
    referral = await _pending_referral(workflow, db_session, events, clinician, facility_id)

    await workflow.accept(referral.id, clinician, ReferralAccept(notes="bed available"))
    transit = await workflow.mark_in_transit(
        referral.id, clinician, ReferralTransit(transport_method=TransportMethod.AMBULANCE)
    )
    assert transit.transport_method == TransportMethod.AMBULANCE
    await workflow.mark_arrived(referral.id, clinician, ReferralNote())
    await workflow.start_care(referral.id, clinician, ReferralNote())
    completed = await workflow.complete(
        referral.id,
        clinician,
        ReferralComplete(outcome=ReferralOutcome.IMPROVED, treatment_summary="stented"),
    )

    assert completed.status == ReferralStatus.COMPLETED
    assert completed.outcome == ReferralOutcome.IMPROVED
    assert completed.accepted_at is not None
    assert completed.completed_at is not None

    history = await workflow.history(referral.id)
    statuses = [row.new_status.value for row in reversed(history)]
    assert statuses == [
        "pending",
        "accepted",
        "in_transit",
        "arrived",
        "in_progress",
        "completed",
    ]
    assert REFERRAL_TRANSITIONS.is_legal_walk(statuses, "pending")
    for row in history[:-1]:
        assert row.previous_status is not None


@pytest.mark.asyncio
async def test_skipping_acceptance_is_illegal(db_session, events, locks, clinician, facility_id):
    """A pending referral cannot go straight to in transit."""
    workflow = ReferralWorkflow(db_session, events, locks)
    referral = await _pending_referral(workflow, db_session, events, clinician, facility_id)

    with pytest.raises(IllegalTransitionException) as exc_info:
        await workflow.mark_in_transit(referral.id, clinician, ReferralTransit())

    assert exc_info.value.from_status == "pending"
    assert exc_info.value.to_status == "in_transit"
    reloaded = await workflow.get_referral(referral.id)
    assert reloaded.status == ReferralStatus.PENDING
    assert len(await workflow.history(referral.id)) == 1


@pytest.mark.asyncio
async def test_reject_and_cancel_need_reason(db_session, events, locks, clinician, facility_id):
    workflow = ReferralWorkflow(db_session, events, locks)
    referral = await _pending_referral(workflow, db_session, events, clinician, facility_id)

    with pytest.raises(ValidationException):
        await workflow.reject(referral.id, clinician, ReferralReject(reason=""))
    with pytest.raises(ValidationException):
        await workflow.cancel(referral.id, clinician, ReferralReason(reason=" "))

    cancelled = await workflow.cancel(
        referral.id, clinician, ReferralReason(reason="patient transferred elsewhere")
    )
    assert cancelled.status == ReferralStatus.CANCELLED
    assert cancelled.status_notes == "patient transferred elsewhere"

    with pytest.raises(IllegalTransitionException):
        await workflow.accept(referral.id, clinician, ReferralAccept())


@pytest.mark.asyncio
async def test_reject_keeps_suggested_facilities(
    db_session, events, publisher, locks, clinician, facility_id
):
    workflow = ReferralWorkflow(db_session, events, locks)
    referral = await _pending_referral(workflow, db_session, events, clinician, facility_id)
    alternative = uuid4()

    rejected = await workflow.reject(
        referral.id,
        clinician,
        ReferralReject(reason="cath lab closed", suggested_facility_ids=[alternative]),
        RequestMetadata(ip_address="10.0.0.7", request_id="req-reject-1"),
    )

    assert rejected.status == ReferralStatus.REJECTED
    latest = (await workflow.history(referral.id))[0]
    assert latest.action == ReferralAction.REJECTED
    assert latest.metadata == {"suggested_facility_ids": [str(alternative)]}
    event = publisher.events[-1]
    assert event.event_type == "referral_rejected"
    assert event.payload == {"suggested_facility_ids": [str(alternative)]}
    assert event.request_id == "req-reject-1"



@pytest.mark.asyncio
async def test_escalate_raises_priority_only(db_session, events, locks, clinician, facility_id):
    workflow = ReferralWorkflow(db_session, events, locks)
    referral = await _pending_referral(workflow, db_session, events, clinician, facility_id)
    assert referral.priority == ReferralPriority.HIGH

    with pytest.raises(ValidationException):
        await workflow.escalate(
            referral.id,
            clinician,
            ReferralEscalate(priority=ReferralPriority.MEDIUM, reason="downgrade"),
        )

    escalated = await workflow.escalate(
        referral.id,
        clinician,
        ReferralEscalate(priority=ReferralPriority.CRITICAL, reason="troponin rising"),
    )

    assert escalated.priority == ReferralPriority.CRITICAL
    assert escalated.status == ReferralStatus.PENDING
    latest = (await workflow.history(referral.id))[0]
    assert latest.action == ReferralAction.PRIORITY_CHANGED
    assert latest.metadata == {"old_priority": "High", "new_priority": "Critical"}


@pytest.mark.asyncio
async def test_escalate_terminal_referral_is_illegal(
    db_session, events, locks, clinician, facility_id
):
    workflow = ReferralWorkflow(db_session, events, locks)
    referral = await _pending_referral(workflow, db_session, events, clinician, facility_id)
    await workflow.reject(referral.id, clinician, ReferralReject(reason="no capacity"))

    with pytest.raises(IllegalTransitionException):
        await workflow.escalate(
            referral.id,
            clinician,
            ReferralEscalate(priority=ReferralPriority.CRITICAL, reason="late"),
        )


@pytest.mark.asyncio
async def test_schedule_appointment_books_at_target_facility(
    db_session, events, locks, clinician, doctor_id, facility_id, clinic_day, regular_hours
):
    await AvailabilityService(db_session).create_availability(regular_hours)
    workflow = ReferralWorkflow(db_session, events, locks)
    referral = await _pending_referral(workflow, db_session, events, clinician, facility_id)

    with pytest.raises(IllegalTransitionException):
        await workflow.schedule_appointment(
            referral.id,
            clinician,
            ReferralSchedule(doctor_id=doctor_id, start_at=at(clinic_day, 10)),
        )

    await workflow.accept(referral.id, clinician, ReferralAccept())
    scheduled = await workflow.schedule_appointment(
        referral.id,
        clinician,
        ReferralSchedule(doctor_id=doctor_id, start_at=at(clinic_day, 10)),
    )

    assert scheduled.appointment_id is not None
    assert scheduled.assigned_doctor_id == doctor_id
    assert scheduled.status == ReferralStatus.ACCEPTED

    appointment = await AppointmentScheduler(db_session, events=events, locks=locks).get_appointment(
        scheduled.appointment_id
    )
    assert appointment.referral_id == referral.id
    assert appointment.facility_id == facility_id
    assert appointment.booking_source == BookingSource.REFERRAL
    assert appointment.status == AppointmentStatus.SCHEDULED

    latest = (await workflow.history(referral.id))[0]
    assert latest.action == ReferralAction.SCHEDULED


@pytest.mark.asyncio
async def test_list_referrals_filters(db_session, events, locks, clinician, facility_id):
    workflow = ReferralWorkflow(db_session, events, locks)
    first = await _pending_referral(workflow, db_session, events, clinician, facility_id)
    await _pending_referral(workflow, db_session, events, clinician, facility_id)
    await workflow.accept(first.id, clinician, ReferralAccept())

    accepted = await workflow.list_referrals(ReferralFilters(status=ReferralStatus.ACCEPTED))
    at_facility = await workflow.list_referrals(ReferralFilters(target_facility_id=facility_id))

    assert [item.id for item in accepted.items] == [first.id]
    assert at_facility.total == 2


@pytest.mark.asyncio
async def test_referral_endpoints(client: AsyncClient, auth_headers: dict, facility_id):
    response = await client.post(
        "/api/v1/assessments/",
        json={"external_id": "ref-api-1", "ml_risk_score": 77, "symptoms": ["dizziness"]},
        headers=auth_headers,
    )
    assessment_id = response.json()["id"]

    response = await client.post(
        "/api/v1/referrals/",
        json={"assessment_id": assessment_id, "target_facility_id": str(facility_id)},
        headers=auth_headers,
    )
    assert response.status_code == 201
    referral = response.json()
    assert referral["priority"] == "Critical"

    response = await client.post(
        f"/api/v1/referrals/{referral['id']}/in-transit", json={}, headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["details"]["from_status"] == "pending"

    response = await client.post(
        f"/api/v1/referrals/{referral['id']}/accept", json={}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"

    response = await client.get(
        f"/api/v1/referrals/{referral['id']}/history", headers=auth_headers
    )
    assert response.status_code == 200
    assert [row["action"] for row in response.json()] == ["accepted", "created"]


@pytest.mark.asyncio
async def test_list_orders_most_urgent_first(db_session, events, locks, clinician, facility_id):
    workflow = ReferralWorkflow(db_session, events, locks)
    created = {}
    for priority in (ReferralPriority.LOW, ReferralPriority.CRITICAL, ReferralPriority.MEDIUM):
        assessment = await _assessment(db_session, events, clinician)
        referral = await workflow.create(
            ReferralCreate(
                assessment_id=assessment.id,
                target_facility_id=facility_id,
                priority=priority,
            ),
            clinician,
        )
        created[priority] = referral.id

    listing = await workflow.list_referrals(ReferralFilters(status=ReferralStatus.PENDING))

    assert [item.id for item in listing.items] == [
        created[ReferralPriority.CRITICAL],
        created[ReferralPriority.MEDIUM],
        created[ReferralPriority.LOW],
    ]
