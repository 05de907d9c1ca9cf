# src/core/notifications/broker.py
"""
Long-poll брокеры уведомлений.

Клиент держит HTTP-запрос открытым, пока не придёт событие или не истечёт
таймаут. Каждый такой запрос представлен Waiter. Исполнение и истечение
проходят через Waiter.claim: кто первым перевёл состояние из pending,
тот и победил, второй ничего не делает.

Захват и выемка набора ожидающих не содержат await, поэтому атомарны
относительно других задач event loop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Generic, Optional

from pydantic import ValidationError

from src.common.constants import TypeMsg, WaiterState
from src.common.logger import log_error, log_info, log_warning
from src.infra.message_bus import MessageEnvelope
from src.shared.events import NewRideEvent, RideAcceptedEvent, decode_event
from src.shared.events.base import EventT

DEFAULT_MAX_WAIT_TIMEOUT_MS = 30_000


@dataclass(eq=False)
class Waiter(Generic[EventT]):
    """Заблокированный long-poll запрос."""

    future: asyncio.Future
    deadline: float
    key: Optional[str] = None
    state: WaiterState = WaiterState.PENDING
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    def claim(self, state: WaiterState) -> bool:
        """
        Переводит waiter из pending в state.

        Returns:
            True если этот вызов выиграл
        """
        if self.state is not WaiterState.PENDING:
            return False
        self.state = state
        return True

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class LongPollBroker(Generic[EventT]):
    """
    Набор ожидающих запросов одного процесса.
    Waiter'ы сгруппированы по ключу; без ключа хранятся под None.
    """

    name = "long-poll"

    def __init__(
        self,
        max_timeout_ms: int = DEFAULT_MAX_WAIT_TIMEOUT_MS,
        default_timeout_ms: Optional[int] = None,
    ) -> None:
        """
        Args:
            max_timeout_ms: Потолок времени ожидания (мс)
            default_timeout_ms: Таймаут, если клиент его не указал (мс)
        """
        self._max_timeout_ms = max_timeout_ms
        self._default_timeout_ms = min(default_timeout_ms or max_timeout_ms, max_timeout_ms)
        self._waiters: dict[Optional[str], set[Waiter[EventT]]] = {}
        self._closed = False

    @property
    def max_timeout_ms(self) -> int:
        return self._max_timeout_ms

    @property
    def pending_count(self) -> int:
        """Количество ожидающих запросов."""
        return sum(len(bucket) for bucket in self._waiters.values())

    def clamp_timeout(self, timeout_ms: Optional[int]) -> int:
        """Приводит таймаут к диапазону (0, max_timeout_ms]."""
        if timeout_ms is None:
            return self._default_timeout_ms
        if timeout_ms <= 0 or timeout_ms > self._max_timeout_ms:
            return self._max_timeout_ms
        return timeout_ms

    # =========================================================================
    # РЕГИСТРАЦИЯ
    # =========================================================================

    def register(self, timeout_ms: Optional[int] = None, key: Optional[str] = None) -> Waiter[EventT]:
        """Регистрирует pending waiter и взводит таймер истечения."""
        if self._closed:
            raise RuntimeError(f"Брокер {self.name} закрыт")

        loop = asyncio.get_running_loop()
        delay = self.clamp_timeout(timeout_ms) / 1000
        waiter: Waiter[EventT] = Waiter(
            future=loop.create_future(),
            deadline=loop.time() + delay,
            key=key,
        )
        waiter.timer = loop.call_later(delay, self._expire, waiter)
        self._waiters.setdefault(key, set()).add(waiter)
        return waiter

    def unregister(self, waiter: Waiter[EventT]) -> None:
        """Снимает таймер и регистрацию, не трогая состояние waiter."""
        waiter.cancel_timer()
        bucket = self._waiters.get(waiter.key)
        if bucket is None:
            return
        bucket.discard(waiter)
        if not bucket:
            del self._waiters[waiter.key]

    async def _wait(self, timeout_ms: Optional[int], key: Optional[str]) -> Optional[EventT]:
        waiter = self.register(timeout_ms, key)
        try:
            return await waiter.future
        finally:
            # Отмена задачи (клиент отключился) тоже попадает сюда
            self.unregister(waiter)

    # =========================================================================
    # ИСПОЛНЕНИЕ И ИСТЕЧЕНИЕ
    # =========================================================================

    def _expire(self, waiter: Waiter[EventT]) -> None:
        if not waiter.claim(WaiterState.EXPIRED):
            return
        waiter.cancel_timer()
        self.unregister(waiter)
        if not waiter.future.done():
            waiter.future.set_result(None)

    def _fulfil_all(self, waiters: set[Waiter[EventT]], event: EventT) -> int:
        fulfilled = 0
        for waiter in waiters:
            if not waiter.claim(WaiterState.FULFILLED):
                continue
            waiter.cancel_timer()
            if not waiter.future.done():
                waiter.future.set_result(event)
                fulfilled += 1
        return fulfilled

    def close(self) -> int:
        """
        Истекает все ожидающие запросы (остановка процесса).

        Returns:
            Количество истёкших waiter'ов
        """
        self._closed = True
        drained, self._waiters = self._waiters, {}
        expired = 0
        for bucket in drained.values():
            for waiter in bucket:
                if waiter.claim(WaiterState.EXPIRED):
                    waiter.cancel_timer()
                    if not waiter.future.done():
                        waiter.future.set_result(None)
                    expired += 1
        return expired

    async def _decode(self, envelope: MessageEnvelope, event_cls: type[EventT]) -> Optional[EventT]:
        """Декодирует тело сообщения. Битое сообщение логируется и пропускается."""
        try:
            event = decode_event(envelope.queue_name, envelope.body)
        except (KeyError, ValidationError, ValueError) as e:
            await log_error(
                f"Некорректное сообщение в {envelope.queue_name}: {e}",
                extra={"queue": envelope.queue_name},
            )
            return None

        if not isinstance(event, event_cls):
            await log_warning(
                f"Брокер {self.name} получил событие {event.kind}, ожидалось {event_cls.kind}"
            )
            return None
        return event


class CaptainNotificationBroker(LongPollBroker[NewRideEvent]):
    """
    Ожидающие капитаны одного процесса captain-service.
    Каждое событие new-ride получают все, кто ждал в момент доставки.
    """

    name = "captain-notifications"

    async def wait(self, timeout_ms: Optional[int] = None) -> Optional[NewRideEvent]:
        """
        Ждёт новую поездку.

        Args:
            timeout_ms: Таймаут в мс (приводится к потолку)

        Returns:
            Событие new-ride или None по таймауту
        """
        return await self._wait(timeout_ms, None)

    def deliver(self, event: NewRideEvent) -> int:
        """
        Отдаёт событие всем текущим waiter'ам и очищает набор.
        Зарегистрированные после выемки не затрагиваются.

        Returns:
            Количество исполненных waiter'ов
        """
        drained, self._waiters = self._waiters, {}
        fulfilled = 0
        for bucket in drained.values():
            fulfilled += self._fulfil_all(bucket, event)
        return fulfilled

    async def handle_envelope(self, envelope: MessageEnvelope) -> None:
        """Обработчик очереди new-ride."""
        event = await self._decode(envelope, NewRideEvent)
        if event is None:
            return

        fulfilled = self.deliver(event)
        await log_info(
            f"new-ride {event.ride_id} доставлен {fulfilled} капитанам",
            type_msg=TypeMsg.DEBUG,
        )


class RideAcceptanceBroker(LongPollBroker[RideAcceptedEvent]):
    """
    Пассажиры, ожидающие принятия своей поездки.
    Событие ride-accepted исполняет только waiter'ов этой поездки.
    """

    name = "ride-acceptance"

    async def wait(self, ride_id: str, timeout_ms: Optional[int] = None) -> Optional[RideAcceptedEvent]:
        """
        Ждёт принятия поездки капитаном.

        Returns:
            Событие ride-accepted или None по таймауту
        """
        return await self._wait(timeout_ms, ride_id)

    def pending_for(self, ride_id: str) -> int:
        return len(self._waiters.get(ride_id, ()))

    def deliver(self, event: RideAcceptedEvent) -> int:
        """
        Исполняет waiter'ов поездки event.ride_id.

        Returns:
            Количество исполненных waiter'ов
        """
        drained = self._waiters.pop(event.ride_id, set())
        return self._fulfil_all(drained, event)

    async def handle_envelope(self, envelope: MessageEnvelope) -> None:
        """Обработчик очереди ride-accepted."""
        event = await self._decode(envelope, RideAcceptedEvent)
        if event is None:
            return

        fulfilled = self.deliver(event)
        await log_info(
            f"ride-accepted {event.ride_id} доставлен {fulfilled} пассажирам",
            type_msg=TypeMsg.DEBUG,
        )


def create_captain_broker() -> CaptainNotificationBroker:
    """Создаёт брокер капитанов с потолком таймаута из конфигурации."""
    from src.config import settings

    return CaptainNotificationBroker(
        max_timeout_ms=settings.long_poll.MAX_WAIT_TIMEOUT_MS,
        default_timeout_ms=settings.long_poll.WAIT_TIMEOUT_MS,
    )


def create_acceptance_broker() -> RideAcceptanceBroker:
    """Создаёт брокер принятия поездок с потолком таймаута из конфигурации."""
    from src.config import settings

    return RideAcceptanceBroker(
        max_timeout_ms=settings.long_poll.MAX_WAIT_TIMEOUT_MS,
        default_timeout_ms=settings.long_poll.WAIT_TIMEOUT_MS,
    )
