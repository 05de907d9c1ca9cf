# src/shared/models/__init__.py
"""
Общие DTO и Pydantic-модели для межсервисного взаимодействия.
"""

from src.shared.models.ride import (
    Ride,
    CreateRideRequest,
    AcceptRideRequest,
    StartRideRequest,
    CompleteRideRequest,
    CancelRideRequest,
)
from src.shared.models.common import HealthStatus

__all__ = [
    # Ride
    "Ride",
    "CreateRideRequest",
    "AcceptRideRequest",
    "StartRideRequest",
    "CompleteRideRequest",
    "CancelRideRequest",
    # Common
    "HealthStatus",
]
