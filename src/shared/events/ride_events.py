# src/shared/events/ride_events.py
"""
События жизненного цикла поездки.
"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from src.common.constants import QueueName, RideStatus
from src.shared.events.base import DomainEvent


class NewRideEvent(DomainEvent):
    """Событие: пассажир создал поездку."""

    kind: ClassVar[str] = QueueName.NEW_RIDE.value

    user_id: str
    pickup: str
    destination: str
    status: RideStatus = RideStatus.REQUESTED
    created_at: datetime


class RideAcceptedEvent(DomainEvent):
    """Событие: капитан принял поездку."""

    kind: ClassVar[str] = QueueName.RIDE_ACCEPTED.value

    captain_id: str
    status: RideStatus = RideStatus.ACCEPTED


class RideStartedEvent(DomainEvent):
    """Событие: поездка началась."""

    kind: ClassVar[str] = QueueName.RIDE_STARTED.value

    captain_id: str
    status: RideStatus = RideStatus.STARTED


class RideCompletedEvent(DomainEvent):
    """Событие: поездка завершена."""

    kind: ClassVar[str] = QueueName.RIDE_COMPLETED.value

    captain_id: str
    status: RideStatus = RideStatus.COMPLETED
    fare: float | None = None
    distance: float | None = None


class RideCancelledEvent(DomainEvent):
    """Событие: поездка отменена."""

    kind: ClassVar[str] = QueueName.RIDE_CANCELLED.value

    cancelled_by: str
    status: RideStatus = RideStatus.CANCELLED


EVENT_TYPES: dict[str, type[DomainEvent]] = {
    event_cls.kind: event_cls
    for event_cls in (
        NewRideEvent,
        RideAcceptedEvent,
        RideStartedEvent,
        RideCompletedEvent,
        RideCancelledEvent,
    )
}


def decode_event(kind: str, data: bytes | str) -> DomainEvent:
    """
    Декодирует тело сообщения по имени очереди.

    Raises:
        KeyError: неизвестный тип события
        pydantic.ValidationError: тело не соответствует схеме
    """
    return EVENT_TYPES[kind].from_bytes(data)
