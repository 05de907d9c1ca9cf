# src/core/__init__.py
"""
Доменный слой (Core Domain).
Жизненный цикл поездки и long-poll уведомления.
"""

from src.core.rides import RideLifecycleCoordinator, RideRepository, RideStateMachine
from src.core.notifications import CaptainNotificationBroker, RideAcceptanceBroker

__all__ = [
    "RideLifecycleCoordinator",
    "RideRepository",
    "RideStateMachine",
    "CaptainNotificationBroker",
    "RideAcceptanceBroker",
]
