# src/shared/events/__init__.py
"""
Схемы событий для RabbitMQ.

Каждое событие публикуется в одноимённую durable-очередь:
new-ride, ride-accepted, ride-started, ride-completed, ride-cancelled.
"""

from src.shared.events.base import DomainEvent
from src.shared.events.ride_events import (
    EVENT_TYPES,
    NewRideEvent,
    RideAcceptedEvent,
    RideCancelledEvent,
    RideCompletedEvent,
    RideStartedEvent,
    decode_event,
)

__all__ = [
    "DomainEvent",
    "EVENT_TYPES",
    "NewRideEvent",
    "RideAcceptedEvent",
    "RideStartedEvent",
    "RideCompletedEvent",
    "RideCancelledEvent",
    "decode_event",
]
