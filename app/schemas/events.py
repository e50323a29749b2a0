"""Workflow event schemas consumed by the notification dispatcher."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class EntityType(str, Enum):
    """Kinds of entity whose transitions are published."""

    ASSESSMENT = "assessment"
    REFERRAL = "referral"
    APPOINTMENT = "appointment"
    WAITING_LIST_ENTRY = "waiting_list_entry"


class TransitionEvent(BaseModel):
    """One committed transition."""

    id: UUID
    entity_type: EntityType
    entity_id: UUID
    event_type: str
    from_status: str | None = None
    to_status: str | None = None
    actor_id: UUID | None = None
    actor_role: str | None = None
    alert_triggered: bool | None = None
    payload: dict[str, Any] | None = None
    request_id: str | None = None
    occurred_at: datetime

    model_config = {"from_attributes": True}
