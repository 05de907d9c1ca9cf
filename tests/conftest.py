# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")

from src.common.constants import RideStatus
from src.shared.models.ride import Ride


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "test",
        "PROJECT_NAME": "ride_dispatch_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "json",
        "LOG_TO_FILE": False,
        "DB_HOST": "db.test",
        "DB_PORT": 5433,
        "DB_NAME": "rides_test",
        "DB_USER": "tester",
        "DB_MIN_POOL_SIZE": 1,
        "DB_MAX_POOL_SIZE": 3,
        "RABBITMQ_HOST": "mq.test",
        "RABBITMQ_PORT": 5673,
        "RABBITMQ_USER": "rabbit",
        "RABBITMQ_PASSWORD": "secret",
        "RABBITMQ_VHOST": "/",
        "RABBITMQ_PREFETCH_COUNT": 1,
        "RABBITMQ_RECONNECT_DELAY": 2.5,
        "WAIT_TIMEOUT_MS": 20000,
        "MAX_WAIT_TIMEOUT_MS": 25000,
    }


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_bus() -> AsyncMock:
    """Мок шины сообщений."""
    bus = AsyncMock()
    bus.publish = AsyncMock(return_value=None)
    bus.publish_event = AsyncMock(return_value=None)
    bus.subscribe = AsyncMock(return_value=None)
    bus.health_check = AsyncMock(return_value=True)
    bus.is_connected = True
    return bus


# =============================================================================
# РЕПОЗИТОРИЙ В ПАМЯТИ
# =============================================================================

class InMemoryRideRepository:
    """
    Репозиторий поездок в памяти с той же семантикой условного обновления,
    что и UPDATE ... WHERE status = expected.
    """

    def __init__(self) -> None:
        self.rides: dict[str, Ride] = {}

    async def get_by_id(self, ride_id: str) -> Optional[Ride]:
        await asyncio.sleep(0)
        return self.rides.get(ride_id)

    async def create(self, ride: Ride) -> Ride:
        await asyncio.sleep(0)
        self.rides[ride.id] = ride
        return ride

    async def conditional_update_status(
        self,
        ride_id: str,
        expected: RideStatus,
        new: RideStatus,
        **fields: Any,
    ) -> Optional[Ride]:
        # Переключение задач до проверки, чтобы гонки были реальными
        await asyncio.sleep(0)
        ride = self.rides.get(ride_id)
        if ride is None or ride.status != expected:
            return None
        updated = ride.model_copy(
            update={"status": new, "updated_at": datetime.now(timezone.utc), **fields}
        )
        self.rides[ride_id] = updated
        return updated


@pytest.fixture
def ride_repository() -> InMemoryRideRepository:
    """Репозиторий поездок в памяти."""
    return InMemoryRideRepository()


# =============================================================================
# ТЕСТОВЫЕ ДАННЫЕ
# =============================================================================

@pytest.fixture
def sample_ride() -> Ride:
    """Поездка в статусе requested."""
    return Ride(
        id="ride-1",
        user_id="user-1",
        pickup="Main St 1",
        destination="Airport",
        status=RideStatus.REQUESTED,
    )


@pytest.fixture
def sample_ride_row() -> dict[str, Any]:
    """Строка таблицы rides."""
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return {
        "id": "ride-1",
        "user_id": "user-1",
        "captain_id": None,
        "pickup": "Main St 1",
        "destination": "Airport",
        "status": "requested",
        "fare": None,
        "distance": None,
        "created_at": now,
        "updated_at": now,
    }
