"""Database models."""

from app.models.appointments import appointments
from app.models.assessments import assessments, risk_adjustments
from app.models.doctor_availability import doctor_availability
from app.models.events import workflow_events
from app.models.metadata import metadata
from app.models.referrals import referral_history, referrals
from app.models.waiting_list import waiting_list_entries

__all__ = [
    "appointments",
    "assessments",
    "doctor_availability",
    "metadata",
    "referral_history",
    "referrals",
    "risk_adjustments",
    "waiting_list_entries",
    "workflow_events",
]
