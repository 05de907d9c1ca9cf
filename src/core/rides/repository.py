# src/core/rides/repository.py
"""
Репозиторий поездок в PostgreSQL.
"""

from __future__ import annotations

from typing import Any, Optional

from asyncpg import Record

from src.common.constants import RideStatus, TypeMsg
from src.common.logger import log_error, log_info
from src.infra.database import DatabaseManager
from src.shared.models.ride import Ride

RIDE_COLUMNS = (
    "id, user_id, captain_id, pickup, destination, status, "
    "fare, distance, created_at, updated_at"
)

# Поля, которые можно менять вместе со статусом
UPDATABLE_FIELDS = frozenset({"captain_id", "fare", "distance"})


class RideRepository:
    """Репозиторий поездок."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Инициализация репозитория.

        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_id(self, ride_id: str) -> Optional[Ride]:
        """
        Получает поездку по ID.

        Args:
            ride_id: UUID поездки

        Returns:
            Поездка или None
        """
        try:
            row = await self._db.fetchrow(
                f"SELECT {RIDE_COLUMNS} FROM rides WHERE id = $1",
                ride_id,
            )
        except Exception as e:
            await log_error(f"Ошибка получения поездки {ride_id}: {e}")
            raise

        if row is None:
            return None
        return self._row_to_ride(row)

    async def create(self, ride: Ride) -> Ride:
        """
        Сохраняет новую поездку.

        Args:
            ride: Поездка со статусом requested

        Returns:
            Сохранённая поездка (значения из БД)
        """
        try:
            row = await self._db.fetchrow(
                f"""
                INSERT INTO rides (id, user_id, captain_id, pickup, destination,
                                   status, fare, distance, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING {RIDE_COLUMNS}
                """,
                ride.id,
                ride.user_id,
                ride.captain_id,
                ride.pickup,
                ride.destination,
                ride.status.value,
                ride.fare,
                ride.distance,
                ride.created_at,
                ride.updated_at,
            )
        except Exception as e:
            await log_error(f"Ошибка создания поездки {ride.id}: {e}")
            raise

        await log_info(f"Поездка {ride.id} сохранена", type_msg=TypeMsg.DEBUG)
        return self._row_to_ride(row)

    async def conditional_update_status(
        self,
        ride_id: str,
        expected: RideStatus,
        new: RideStatus,
        **fields: Any,
    ) -> Optional[Ride]:
        """
        Меняет статус, только если текущий статус равен expected.
        Один UPDATE ... WHERE status = expected, поэтому из параллельных
        запросов выигрывает ровно один.

        Args:
            ride_id: UUID поездки
            expected: Ожидаемый текущий статус
            new: Новый статус
            **fields: Дополнительные поля (captain_id, fare, distance)

        Returns:
            Обновлённая поездка или None, если условие не выполнилось
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Недопустимые поля для обновления: {sorted(unknown)}")

        assignments = ["status = $3", "updated_at = NOW()"]
        params: list[Any] = [ride_id, RideStatus(expected).value, RideStatus(new).value]
        for name, value in fields.items():
            params.append(value)
            assignments.append(f"{name} = ${len(params)}")

        try:
            row = await self._db.fetchrow(
                f"""
                UPDATE rides
                SET {", ".join(assignments)}
                WHERE id = $1 AND status = $2
                RETURNING {RIDE_COLUMNS}
                """,
                *params,
            )
        except Exception as e:
            await log_error(f"Ошибка обновления статуса поездки {ride_id}: {e}")
            raise

        if row is None:
            return None
        return self._row_to_ride(row)

    @staticmethod
    def _row_to_ride(row: Record) -> Ride:
        """Преобразует строку БД в модель Ride."""
        return Ride(
            id=str(row["id"]),
            user_id=row["user_id"],
            captain_id=row["captain_id"],
            pickup=row["pickup"],
            destination=row["destination"],
            status=RideStatus(row["status"]),
            fare=row["fare"],
            distance=row["distance"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
