# src/shared/events/base.py
"""
Базовый класс доменных событий.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.common.constants import RideStatus


class DomainEvent(BaseModel):
    """
    Базовый класс для всех доменных событий поездки.

    События:
    - неизменяемы после создания
    - сериализуются в UTF-8 JSON с ключами в camelCase
    - публикуются в очередь, имя которой совпадает с kind
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    kind: ClassVar[str] = ""

    ride_id: str
    status: RideStatus
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_bytes(self) -> bytes:
        """Сериализует событие для транспорта."""
        return self.model_dump_json(by_alias=True).encode("utf-8")

    def to_payload(self) -> dict:
        """JSON-совместимый словарь (ответ long-poll)."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "DomainEvent":
        """Десериализует событие из JSON."""
        return cls.model_validate_json(data)


EventT = TypeVar("EventT", bound=DomainEvent)
