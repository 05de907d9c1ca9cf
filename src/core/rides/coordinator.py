# src/core/rides/coordinator.py
"""
Координатор жизненного цикла поездки.
Проверяет переходы статуса, пишет их условным UPDATE и после
фиксации публикует доменное событие.
"""

from __future__ import annotations

from typing import Any, Optional

from src.common.constants import RideStatus, TypeMsg
from src.common.exceptions import RideConflictError, RideNotFoundError, RideValidationError
from src.common.logger import log_error, log_info, log_warning
from src.core.rides.repository import RideRepository
from src.core.rides.state_machine import RideStateMachine
from src.infra.message_bus import MessageBus
from src.shared.events import (
    DomainEvent,
    NewRideEvent,
    RideAcceptedEvent,
    RideCancelledEvent,
    RideCompletedEvent,
    RideStartedEvent,
)
from src.shared.models.ride import Ride


class RideLifecycleCoordinator:
    """
    Сервис поездок.
    Единственный, кто меняет статус поездки.
    """

    def __init__(self, repository: RideRepository, bus: MessageBus) -> None:
        """
        Args:
            repository: Репозиторий поездок
            bus: Шина сообщений для публикации событий
        """
        self._repo = repository
        self._bus = bus

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_ride(self, ride_id: str) -> Ride:
        """
        Получает поездку по ID.

        Raises:
            RideNotFoundError: поездка не существует
        """
        ride = await self._repo.get_by_id(ride_id)
        if ride is None:
            raise RideNotFoundError(ride_id)
        return ride

    # =========================================================================
    # ПЕРЕХОДЫ
    # =========================================================================

    async def create_ride(self, user_id: str, pickup: str, destination: str) -> Ride:
        """
        Создаёт поездку в статусе requested и публикует new-ride.

        Args:
            user_id: ID пассажира
            pickup: Адрес подачи
            destination: Адрес назначения

        Returns:
            Сохранённая поездка

        Raises:
            RideValidationError: пустой адрес или пользователь
        """
        if not user_id or not str(user_id).strip():
            raise RideValidationError("userId is required")
        if not pickup or not pickup.strip():
            raise RideValidationError("pickup is required")
        if not destination or not destination.strip():
            raise RideValidationError("destination is required")

        ride = await self._repo.create(
            Ride(
                user_id=str(user_id).strip(),
                pickup=pickup.strip(),
                destination=destination.strip(),
                status=RideStatus.REQUESTED,
            )
        )

        await log_info(
            f"Поездка {ride.id} создана пассажиром {ride.user_id}",
            type_msg=TypeMsg.INFO,
        )

        await self._publish(
            NewRideEvent(
                ride_id=ride.id,
                user_id=ride.user_id,
                pickup=ride.pickup,
                destination=ride.destination,
                created_at=ride.created_at,
            )
        )
        return ride

    async def accept_ride(self, ride_id: str, captain_id: str) -> Ride:
        """
        Капитан принимает поездку.
        Из параллельных запросов на одну поездку выигрывает ровно один.

        Raises:
            RideNotFoundError: поездка не существует
            RideConflictError: поездка уже не в статусе requested
        """
        ride = await self._transition(
            ride_id,
            RideStatus.ACCEPTED,
            captain_id=self._normalize_captain_id(captain_id),
        )

        await log_info(
            f"Поездка {ride.id} принята капитаном {ride.captain_id}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(
            RideAcceptedEvent(ride_id=ride.id, captain_id=ride.captain_id)
        )
        return ride

    async def start_ride(self, ride_id: str, captain_id: str) -> Ride:
        """
        Начало поездки. Начать может только назначенный капитан.

        Raises:
            RideNotFoundError: поездка не существует
            RideConflictError: не тот статус или не тот капитан
        """
        ride = await self._transition(
            ride_id,
            RideStatus.STARTED,
            assigned_captain=self._normalize_captain_id(captain_id),
        )

        await log_info(f"Поездка {ride.id} началась", type_msg=TypeMsg.INFO)
        await self._publish(
            RideStartedEvent(ride_id=ride.id, captain_id=ride.captain_id)
        )
        return ride

    async def complete_ride(
        self,
        ride_id: str,
        captain_id: str,
        fare: Optional[float] = None,
        distance: Optional[float] = None,
    ) -> Ride:
        """
        Завершение поездки с итоговой стоимостью и расстоянием.

        Raises:
            RideValidationError: отрицательные fare или distance
            RideNotFoundError: поездка не существует
            RideConflictError: не тот статус или не тот капитан
        """
        if fare is not None and fare < 0:
            raise RideValidationError("fare must be non-negative")
        if distance is not None and distance < 0:
            raise RideValidationError("distance must be non-negative")

        ride = await self._transition(
            ride_id,
            RideStatus.COMPLETED,
            assigned_captain=self._normalize_captain_id(captain_id),
            fare=fare,
            distance=distance,
        )

        await log_info(
            f"Поездка {ride.id} завершена: fare={ride.fare}, distance={ride.distance}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(
            RideCompletedEvent(
                ride_id=ride.id,
                captain_id=ride.captain_id,
                fare=ride.fare,
                distance=ride.distance,
            )
        )
        return ride

    async def cancel_ride(self, ride_id: str, cancelled_by: str = "user") -> Ride:
        """
        Отмена поездки (из requested или accepted).

        Raises:
            RideNotFoundError: поездка не существует
            RideConflictError: поездка уже началась или закрыта
        """
        ride = await self._transition(ride_id, RideStatus.CANCELLED)

        await log_info(
            f"Поездка {ride.id} отменена ({cancelled_by})",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(
            RideCancelledEvent(ride_id=ride.id, cancelled_by=cancelled_by)
        )
        return ride

    # =========================================================================
    # ВНУТРЕННЕЕ
    # =========================================================================

    @staticmethod
    def _normalize_captain_id(captain_id: Optional[str]) -> str:
        """Идентификатор капитана без пробелов по краям; пустой отклоняется."""
        normalized = str(captain_id).strip() if captain_id is not None else ""
        if not normalized:
            raise RideValidationError("captainId is required")
        return normalized

    async def _transition(
        self,
        ride_id: str,
        new_status: RideStatus,
        *,
        assigned_captain: Optional[str] = None,
        **fields: Any,
    ) -> Ride:
        """
        Проверяет и применяет переход статуса.

        Условный UPDATE может проиграть гонку: тогда поездка перечитывается.
        Если новый статус всё ещё допускает переход, попытка повторяется,
        иначе конфликт несёт фактический статус.
        """
        ride = await self.get_ride(ride_id)

        # Каждая повторная попытка видит статус строго дальше по цепочке
        for _ in range(len(RideStateMachine.ALLOWED_TRANSITIONS)):
            if not RideStateMachine.can_transition(ride.status, new_status):
                raise RideConflictError(ride.id, ride.status)
            if assigned_captain is not None and ride.captain_id != assigned_captain:
                raise RideConflictError(
                    ride.id,
                    ride.status,
                    f"Ride {ride.id} is assigned to another captain",
                )

            updated = await self._repo.conditional_update_status(
                ride.id, ride.status, new_status, **fields
            )
            if updated is not None:
                return updated

            await log_warning(
                f"Поездка {ride.id}: статус изменился во время перехода в {new_status}"
            )
            ride = await self.get_ride(ride_id)

        raise RideConflictError(ride.id, ride.status)

    async def _publish(self, event: DomainEvent) -> None:
        """Публикация после фиксации в БД. Ошибка шины не отменяет переход."""
        try:
            await self._bus.publish_event(event)
        except Exception as e:
            await log_error(
                f"Не удалось опубликовать {event.kind} для поездки {event.ride_id}: {e}"
            )
