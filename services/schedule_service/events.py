"""Domain events emitted by the booking engine.

Events are handed to a publisher only after the transaction that produced
them has committed. Delivery belongs to the communications service; a
failed delivery is logged and never fails the engine operation.

Usage:
    from services.schedule_service.events import DomainEvent, EventType

    await publisher.publish(
        DomainEvent(type=EventType.BOOKING_CREATED, entity_id=booking.id)
    )
"""

import enum
import uuid
from datetime import datetime
from functools import lru_cache
from typing import Any, Iterable, Protocol

import httpx
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from libs.common.service_client import internal_post
from pydantic import BaseModel, Field

logger = get_logger(__name__)


class EventType(str, enum.Enum):
    BOOKING_CREATED = "booking.created"
    BOOKING_CONFIRMED = "booking.confirmed"
    BOOKING_CANCELLED = "booking.cancelled"
    SCHEDULE_STATUS_CHANGED = "schedule.status_changed"
    ATTENDANCE_AUTO_CHECKED_OUT = "attendance.auto_checked_out"
    ATTENDANCE_CHECKOUT_REMINDER = "attendance.checkout_reminder"


class DomainEvent(BaseModel):
    type: EventType
    entity_id: uuid.UUID
    occurred_at: datetime = Field(default_factory=utc_now)
    payload: dict[str, Any] = Field(default_factory=dict)


class EventPublisher(Protocol):
    async def publish(self, event: DomainEvent) -> None: ...


class HttpEventPublisher:
    """Deliver events to the communications service over HTTP."""

    def __init__(self, service_url: str, *, enabled: bool = True):
        self.service_url = service_url
        self.enabled = enabled

    async def publish(self, event: DomainEvent) -> None:
        if not self.enabled:
            logger.debug("Events disabled, dropping %s for %s", event.type.value, event.entity_id)
            return
        try:
            response = await internal_post(
                service_url=self.service_url,
                path="/internal/events",
                calling_service="schedule",
                json=event.model_dump(mode="json"),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(
                "Failed to deliver %s for %s: %s",
                event.type.value,
                event.entity_id,
                exc,
            )


async def publish_all(publisher: EventPublisher, events: Iterable[DomainEvent]) -> None:
    for event in events:
        await publisher.publish(event)


@lru_cache
def get_event_publisher() -> EventPublisher:
    """Return the process-wide publisher. FastAPI dependency."""
    settings = get_settings()
    return HttpEventPublisher(
        settings.COMMUNICATIONS_SERVICE_URL, enabled=settings.EVENTS_ENABLED
    )
