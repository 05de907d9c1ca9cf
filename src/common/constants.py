# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RideStatus(str, Enum):
    """Статусы поездки."""
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class QueueName(str, Enum):
    """Имена очередей RabbitMQ (совпадают с типом события)."""
    NEW_RIDE = "new-ride"
    RIDE_ACCEPTED = "ride-accepted"
    RIDE_STARTED = "ride-started"
    RIDE_COMPLETED = "ride-completed"
    RIDE_CANCELLED = "ride-cancelled"

    def __str__(self) -> str:
        return self.value


class WaiterState(str, Enum):
    """Состояние ожидающего long-poll запроса."""
    PENDING = "pending"
    FULFILLED = "fulfilled"
    EXPIRED = "expired"
