# tests/core/test_ride_repository.py
"""
Тесты для репозитория поездок.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from src.common.constants import RideStatus
from src.core.rides.repository import RideRepository
from src.shared.models.ride import Ride


class TestRideRepository:
    """Тесты для RideRepository."""

    @pytest.mark.asyncio
    async def test_get_by_id(self, mock_db: AsyncMock, sample_ride_row: dict[str, Any]) -> None:
        """Строка БД превращается в Ride."""
        mock_db.fetchrow.return_value = sample_ride_row
        repo = RideRepository(mock_db)

        ride = await repo.get_by_id("ride-1")

        assert ride is not None
        assert ride.id == "ride-1"
        assert ride.status is RideStatus.REQUESTED
        assert ride.captain_id is None

    @pytest.mark.asyncio
    async def test_get_by_id_missing(self, mock_db: AsyncMock) -> None:
        """Неизвестный ID даёт None."""
        repo = RideRepository(mock_db)

        assert await repo.get_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_get_by_id_db_error_propagates(self, mock_db: AsyncMock) -> None:
        """Ошибка БД не маскируется под отсутствие поездки."""
        mock_db.fetchrow.side_effect = RuntimeError("pool closed")
        repo = RideRepository(mock_db)

        with pytest.raises(RuntimeError):
            await repo.get_by_id("ride-1")

    @pytest.mark.asyncio
    async def test_create(self, mock_db: AsyncMock, sample_ride: Ride, sample_ride_row: dict[str, Any]) -> None:
        """INSERT ... RETURNING со статусом requested."""
        mock_db.fetchrow.return_value = sample_ride_row
        repo = RideRepository(mock_db)

        ride = await repo.create(sample_ride)

        args = mock_db.fetchrow.await_args.args
        assert "INSERT INTO rides" in args[0]
        assert args[1] == sample_ride.id
        assert args[6] == "requested"
        assert ride.id == "ride-1"

    @pytest.mark.asyncio
    async def test_conditional_update_query(self, mock_db: AsyncMock, sample_ride_row: dict[str, Any]) -> None:
        """Один UPDATE с условием на ожидаемый статус."""
        mock_db.fetchrow.return_value = {**sample_ride_row, "status": "accepted", "captain_id": "cap-1"}
        repo = RideRepository(mock_db)

        ride = await repo.conditional_update_status(
            "ride-1", RideStatus.REQUESTED, RideStatus.ACCEPTED, captain_id="cap-1"
        )

        query, *params = mock_db.fetchrow.await_args.args
        assert "WHERE id = $1 AND status = $2" in query
        assert "captain_id = $4" in query
        assert "RETURNING" in query
        assert params == ["ride-1", "requested", "accepted", "cap-1"]
        assert ride is not None
        assert ride.status is RideStatus.ACCEPTED
        assert ride.captain_id == "cap-1"

    @pytest.mark.asyncio
    async def test_conditional_update_lost(self, mock_db: AsyncMock) -> None:
        """Условие не выполнилось: None."""
        mock_db.fetchrow.return_value = None
        repo = RideRepository(mock_db)

        result = await repo.conditional_update_status("ride-1", RideStatus.REQUESTED, RideStatus.ACCEPTED)

        assert result is None

    @pytest.mark.asyncio
    async def test_conditional_update_rejects_unknown_fields(self, mock_db: AsyncMock) -> None:
        """Менять можно только разрешённые поля."""
        repo = RideRepository(mock_db)

        with pytest.raises(ValueError):
            await repo.conditional_update_status(
                "ride-1", RideStatus.REQUESTED, RideStatus.ACCEPTED, user_id="other"
            )

        mock_db.fetchrow.assert_not_awaited()
