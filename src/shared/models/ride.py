from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.common.constants import RideStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class Ride(CamelModel):
    """Поездка. Источник истины: таблица rides."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    captain_id: Optional[str] = None

    pickup: str
    destination: str

    status: RideStatus = RideStatus.REQUESTED
    fare: Optional[float] = Field(None, ge=0.0)
    distance: Optional[float] = Field(None, ge=0.0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (RideStatus.COMPLETED, RideStatus.CANCELLED)


class CreateRideRequest(CamelModel):
    user_id: str
    pickup: str
    destination: str


class AcceptRideRequest(CamelModel):
    ride_id: str
    captain_id: str


class StartRideRequest(CamelModel):
    ride_id: str
    captain_id: str


class CompleteRideRequest(CamelModel):
    ride_id: str
    captain_id: str
    fare: Optional[float] = Field(None, ge=0.0)
    distance: Optional[float] = Field(None, ge=0.0)


class CancelRideRequest(CamelModel):
    ride_id: str
    cancelled_by: str = "user"
