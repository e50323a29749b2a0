"""Workflow event recording and publishing for the notification dispatcher."""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import utcnow
from app.core.redis_client import get_async_redis_client
from app.database import unit_of_work
from app.repositories import events as event_repo
from app.schemas.common import Actor, RequestMetadata
from app.schemas.events import EntityType, TransitionEvent

logger = structlog.get_logger(__name__)


class EventPublisher(Protocol):
    """Hands committed transition events to the notification dispatcher."""

    async def publish(self, event: TransitionEvent) -> None:  # pragma: no cover
        ...


class LogEventPublisher:
    """Writes events to the structured log."""

    async def publish(self, event: TransitionEvent) -> None:
        logger.info(
            "workflow_event",
            event_id=str(event.id),
            entity_type=event.entity_type.value,
            entity_id=str(event.entity_id),
            event_type=event.event_type,
            from_status=event.from_status,
            to_status=event.to_status,
            actor_id=str(event.actor_id) if event.actor_id else None,
            alert_triggered=event.alert_triggered,
        )


class RedisEventPublisher:
    """Publishes events as JSON on a redis pub/sub channel."""

    def __init__(self, client, channel: str):
        self.client = client
        self.channel = channel

    async def publish(self, event: TransitionEvent) -> None:
        await self.client.publish(self.channel, event.model_dump_json())


def get_event_publisher() -> EventPublisher:
    """
    Get the publisher selected by ``EVENT_PUBLISHER``.

    Returns:
        Configured event publisher
    """
    if settings.event_publisher == "redis":
        return RedisEventPublisher(get_async_redis_client(), settings.event_channel)
    return LogEventPublisher()


def _json_safe(payload: dict[str, Any] | None) -> dict[str, Any] | None:
    if payload is None:
        return None
    return json.loads(json.dumps(payload, default=str))


class WorkflowEventRecorder:
    """
    Transactional outbox for workflow transitions.

    Events are inserted in the same unit of work as the transition they
    describe and handed to the publisher only after that unit commits.
    """

    def __init__(self, db: AsyncSession, publisher: EventPublisher | None = None):
        """Initialize recorder with database session and publisher."""
        self.db = db
        self.publisher = publisher or get_event_publisher()
        self._pending: list[TransitionEvent] = []

    async def record(
        self,
        entity_type: EntityType,
        entity_id: UUID,
        event_type: str,
        actor: Actor | None = None,
        from_status: str | None = None,
        to_status: str | None = None,
        alert_triggered: bool | None = None,
        payload: dict[str, Any] | None = None,
        request: RequestMetadata | None = None,
    ) -> TransitionEvent:
        """
        Write one event row into the current unit of work.

        Args:
            entity_type: Kind of entity that transitioned
            entity_id: ID of the entity
            event_type: Event name, e.g. ``appointment_booked``
            actor: Identity performing the transition
            from_status: Status before the transition
            to_status: Status after the transition
            alert_triggered: Risk alert flag, for risk adjustments
            payload: Extra JSON-serializable details for the dispatcher
            request: Originating request, stored on the row for audit

        Returns:
            The recorded event
        """
        row = await event_repo.insert_event(
            self.db,
            {
                "entity_type": entity_type.value,
                "entity_id": entity_id,
                "event_type": event_type,
                "from_status": from_status,
                "to_status": to_status,
                "actor_id": actor.id if actor else None,
                "actor_role": actor.role if actor else None,
                "alert_triggered": alert_triggered,
                "payload": _json_safe(payload),
                "ip_address": request.ip_address if request else None,
                "user_agent": request.user_agent if request else None,
                "request_id": request.request_id if request else None,
                "occurred_at": utcnow(),
            },
        )
        event = TransitionEvent.model_validate(row)
        self._pending.append(event)
        return event

    def requeue(self, events: list[TransitionEvent]) -> None:
        """Queue already-committed events for the next flush."""
        self._pending.extend(events)

    @property
    def pending(self) -> list[TransitionEvent]:
        """Events recorded in the open unit of work."""
        return list(self._pending)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Run a block as one unit of work, then publish the events it recorded.

        Events recorded by a block that fails are discarded with its rollback.
        """
        try:
            async with unit_of_work(self.db):
                yield
        except BaseException:
            self._pending.clear()
            raise
        await self.flush()

    async def flush(self) -> int:
        """
        Publish committed events and stamp ``published_at``.

        Publishing is fire-and-forget: failures are logged and the event stays
        unpublished for the relay to retry.

        Returns:
            Number of events published
        """
        events, self._pending = self._pending, []
        published: list[UUID] = []

        for event in events:
            try:
                await self.publisher.publish(event)
                published.append(event.id)
            except Exception as e:
                logger.warning(
                    "workflow_event_publish_failed",
                    event_id=str(event.id),
                    event_type=event.event_type,
                    error=str(e),
                )

        if published:
            try:
                async with unit_of_work(self.db):
                    await event_repo.mark_published(self.db, published, utcnow())
            except Exception as e:
                logger.warning("workflow_event_mark_failed", count=len(published), error=str(e))

        return len(published)


async def relay_unpublished(
    db: AsyncSession,
    publisher: EventPublisher | None = None,
    batch_size: int = 100,
) -> int:
    """
    Republish outbox rows that were never marked published.

    Args:
        db: Database session
        publisher: Publisher to use, defaults to the configured one
        batch_size: Maximum events per pass

    Returns:
        Number of events published
    """
    recorder = WorkflowEventRecorder(db, publisher)
    rows = await event_repo.list_unpublished(db, limit=batch_size)
    recorder.requeue([TransitionEvent.model_validate(row) for row in rows])
    count = await recorder.flush()
    logger.info("workflow_events_relayed", found=len(rows), published=count)
    return count


async def list_entity_events(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: UUID,
) -> list[TransitionEvent]:
    """Every recorded transition of one entity, oldest first."""
    rows = await event_repo.list_for_entity(db, entity_type.value, entity_id)
    return [TransitionEvent.model_validate(row) for row in rows]
