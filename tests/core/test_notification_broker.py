# tests/core/test_notification_broker.py
"""
Тесты для long-poll брокеров уведомлений.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from src.common.constants import WaiterState
from src.core.notifications.broker import (
    CaptainNotificationBroker,
    RideAcceptanceBroker,
    Waiter,
)
from src.infra.message_bus import MessageEnvelope
from src.shared.events import NewRideEvent, RideAcceptedEvent


def _new_ride(ride_id: str = "ride-1") -> NewRideEvent:
    return NewRideEvent(
        ride_id=ride_id,
        user_id="u1",
        pickup="A",
        destination="B",
        created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


async def _settle() -> None:
    """Даёт ожидающим задачам зарегистрироваться."""
    for _ in range(3):
        await asyncio.sleep(0)


class TestWaiter:
    """Тесты для Waiter.claim."""

    @pytest.mark.asyncio
    async def test_first_claim_wins(self) -> None:
        """Побеждает первый переход из pending, второй ничего не делает."""
        waiter = Waiter(future=asyncio.get_running_loop().create_future(), deadline=0.0)

        assert waiter.claim(WaiterState.EXPIRED) is True
        assert waiter.claim(WaiterState.FULFILLED) is False
        assert waiter.state is WaiterState.EXPIRED


class TestCaptainNotificationBroker:
    """Тесты для CaptainNotificationBroker."""

    @pytest.mark.asyncio
    async def test_waiter_receives_event(self) -> None:
        """Ожидающий до доставки получает именно это событие."""
        broker = CaptainNotificationBroker()
        task = asyncio.create_task(broker.wait(1000))
        await _settle()
        assert broker.pending_count == 1

        event = _new_ride()
        assert broker.deliver(event) == 1

        assert await task is event
        assert broker.pending_count == 0

    @pytest.mark.asyncio
    async def test_all_waiters_get_identical_event(self) -> None:
        """Все ожидающие в момент доставки получают один и тот же объект."""
        broker = CaptainNotificationBroker()
        tasks = [asyncio.create_task(broker.wait(1000)) for _ in range(5)]
        await _settle()

        event = _new_ride()
        fulfilled = broker.deliver(event)
        results = await asyncio.gather(*tasks)

        assert fulfilled == 5
        assert all(result is event for result in results)
        assert broker.pending_count == 0

    @pytest.mark.asyncio
    async def test_waiter_after_delivery_not_fulfilled(self) -> None:
        """Пришедший после доставки не получает прошлое событие."""
        broker = CaptainNotificationBroker()
        broker.deliver(_new_ride())

        assert await broker.wait(50) is None

    @pytest.mark.asyncio
    async def test_expiry(self) -> None:
        """По таймауту возвращается None, waiter снимается с учёта."""
        broker = CaptainNotificationBroker()
        loop = asyncio.get_running_loop()
        started = loop.time()

        result = await broker.wait(50)

        elapsed = loop.time() - started
        assert result is None
        assert 0.04 <= elapsed < 1.0
        assert broker.pending_count == 0

    @pytest.mark.asyncio
    async def test_deliver_after_expiry_is_noop(self) -> None:
        """Истёкший waiter не исполняется повторно."""
        broker = CaptainNotificationBroker()
        assert await broker.wait(20) is None

        assert broker.deliver(_new_ride()) == 0

    @pytest.mark.asyncio
    async def test_expired_waiter_not_fulfilled(self) -> None:
        """Если истечение выиграло claim, доставка его пропускает."""
        broker = CaptainNotificationBroker()
        waiter = broker.register(1000)
        broker._expire(waiter)

        assert waiter.state is WaiterState.EXPIRED
        assert waiter.future.result() is None
        assert broker.deliver(_new_ride()) == 0

    @pytest.mark.asyncio
    async def test_cancelled_wait_unregisters(self) -> None:
        """Отмена ожидания (клиент ушёл) снимает waiter."""
        broker = CaptainNotificationBroker()
        task = asyncio.create_task(broker.wait(1000))
        await _settle()
        assert broker.pending_count == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert broker.pending_count == 0
        assert broker.deliver(_new_ride()) == 0

    @pytest.mark.parametrize(
        "requested,expected",
        [(None, 30000), (0, 30000), (-5, 30000), (45000, 30000), (1500, 1500), (30000, 30000)],
    )
    def test_clamp_timeout(self, requested, expected) -> None:
        """Таймаут вне (0, max] обрезается до потолка."""
        assert CaptainNotificationBroker().clamp_timeout(requested) == expected

    def test_default_timeout(self) -> None:
        """Без таймаута используется значение по умолчанию, но не выше потолка."""
        assert CaptainNotificationBroker(max_timeout_ms=30000, default_timeout_ms=20000).clamp_timeout(None) == 20000
        assert CaptainNotificationBroker(max_timeout_ms=10000, default_timeout_ms=20000).clamp_timeout(None) == 10000

    @pytest.mark.asyncio
    async def test_close_expires_all(self) -> None:
        """Остановка истекает всех ожидающих и запрещает новые ожидания."""
        broker = CaptainNotificationBroker()
        tasks = [asyncio.create_task(broker.wait(1000)) for _ in range(3)]
        await _settle()

        assert broker.close() == 3
        assert await asyncio.gather(*tasks) == [None, None, None]

        with pytest.raises(RuntimeError):
            await broker.wait(10)

    @pytest.mark.asyncio
    async def test_handle_envelope(self) -> None:
        """Сообщение из new-ride декодируется и доставляется."""
        broker = CaptainNotificationBroker()
        task = asyncio.create_task(broker.wait(1000))
        await _settle()

        event = _new_ride("ride-42")
        await broker.handle_envelope(MessageEnvelope(queue_name="new-ride", body=event.to_bytes()))

        result = await task
        assert result == event
        assert result.to_payload()["rideId"] == "ride-42"

    @pytest.mark.asyncio
    async def test_handle_malformed_envelope(self) -> None:
        """Битое сообщение не трогает ожидающих и не падает."""
        broker = CaptainNotificationBroker()
        waiter = broker.register(1000)

        await broker.handle_envelope(MessageEnvelope(queue_name="new-ride", body=b"not json"))

        assert waiter.state is WaiterState.PENDING
        assert broker.pending_count == 1
        broker.close()


class TestRideAcceptanceBroker:
    """Тесты для RideAcceptanceBroker."""

    @pytest.mark.asyncio
    async def test_only_matching_ride_fulfilled(self) -> None:
        """ride-accepted исполняет только ожидающих этой поездки."""
        broker = RideAcceptanceBroker()
        mine = asyncio.create_task(broker.wait("ride-1", 1000))
        other = asyncio.create_task(broker.wait("ride-2", 1000))
        await _settle()

        event = RideAcceptedEvent(ride_id="ride-1", captain_id="c1")
        assert broker.deliver(event) == 1

        assert await mine is event
        assert broker.pending_for("ride-1") == 0
        assert broker.pending_for("ride-2") == 1

        other.cancel()
        with pytest.raises(asyncio.CancelledError):
            await other
        assert broker.pending_count == 0

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Без принятия ожидание заканчивается None."""
        broker = RideAcceptanceBroker()

        assert await broker.wait("ride-1", 30) is None
        assert broker.pending_count == 0

    @pytest.mark.asyncio
    async def test_handle_envelope(self) -> None:
        """Сообщение из ride-accepted доставляется по rideId."""
        broker = RideAcceptanceBroker()
        task = asyncio.create_task(broker.wait("ride-7", 1000))
        await _settle()

        event = RideAcceptedEvent(ride_id="ride-7", captain_id="c9")
        await broker.handle_envelope(MessageEnvelope(queue_name="ride-accepted", body=event.to_bytes()))

        result = await task
        assert result.captain_id == "c9"

    @pytest.mark.asyncio
    async def test_wrong_queue_ignored(self) -> None:
        """Событие другого типа не исполняет ожидающих."""
        broker = RideAcceptanceBroker()
        waiter = broker.register(1000, key="ride-1")

        await broker.handle_envelope(
            MessageEnvelope(queue_name="new-ride", body=_new_ride("ride-1").to_bytes())
        )

        assert waiter.state is WaiterState.PENDING
        broker.close()
