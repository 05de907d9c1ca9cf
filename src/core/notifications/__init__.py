# src/core/notifications/__init__.py
"""
Long-poll уведомления: новые поездки для капитанов
и принятие поездки для пассажиров.
"""

from src.core.notifications.broker import (
    CaptainNotificationBroker,
    LongPollBroker,
    RideAcceptanceBroker,
    Waiter,
    create_acceptance_broker,
    create_captain_broker,
)

__all__ = [
    "CaptainNotificationBroker",
    "LongPollBroker",
    "RideAcceptanceBroker",
    "Waiter",
    "create_acceptance_broker",
    "create_captain_broker",
]
