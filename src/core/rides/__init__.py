# src/core/rides/__init__.py
"""
Домен поездок.
Переходы статуса, хранение и публикация событий.
"""

from src.core.rides.state_machine import RideStateMachine
from src.core.rides.repository import RideRepository
from src.core.rides.coordinator import RideLifecycleCoordinator

__all__ = [
    "RideStateMachine",
    "RideRepository",
    "RideLifecycleCoordinator",
]
