# src/infra/message_bus.py
"""
Шина сообщений на базе RabbitMQ.

Durable-очереди с persistent-сообщениями, fair dispatch (prefetch=1)
и подтверждение после обработчика. Соединением владеет единственная фоновая
задача-супервизор: она подключается, переподключается с фиксированной
задержкой и восстанавливает подписки после разрыва.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractIncomingMessage,
    AbstractQueue,
)

from src.common.constants import TypeMsg
from src.common.exceptions import BusUnavailableError
from src.common.logger import log_error, log_info, log_warning
from src.shared.events.base import DomainEvent


@dataclass
class MessageEnvelope:
    """
    Доставленное сообщение.

    Дескриптор доставки действителен только во время вызова обработчика,
    после возврата из него шина освобождает его.
    """
    queue_name: str
    body: bytes
    durable: bool = True
    persistent: bool = True
    redelivered: bool = False
    _delivery: AbstractIncomingMessage | None = field(default=None, repr=False)

    @property
    def delivery(self) -> AbstractIncomingMessage:
        """Дескриптор доставки RabbitMQ."""
        if self._delivery is None:
            raise RuntimeError(f"Дескриптор доставки из {self.queue_name} уже освобождён")
        return self._delivery

    def release(self) -> None:
        """Освобождает дескриптор доставки."""
        self._delivery = None

    def json(self) -> Any:
        """Декодирует тело как UTF-8 JSON."""
        return json.loads(self.body.decode("utf-8"))


# Тип обработчика сообщений
MessageHandler = Callable[[MessageEnvelope], Awaitable[None]]


class MessageBus:
    """
    Клиент RabbitMQ.

    Реализует:
    - Публикацию в durable-очереди (persistent delivery)
    - Подписку с prefetch=1 и ack после обработчика
    - Переподключение через фоновый супервизор с восстановлением подписок
    """

    def __init__(
        self,
        url: str,
        *,
        prefetch_count: int = 1,
        reconnect_delay: float = 5.0,
        requeue_on_failure: bool = True,
    ) -> None:
        """
        Args:
            url: URL RabbitMQ
            prefetch_count: Количество неподтверждённых сообщений на потребителя
            reconnect_delay: Пауза между попытками подключения (секунды)
            requeue_on_failure: Возвращать ли в очередь сообщение, обработчик
                которого упал (иначе ack в любом случае)
        """
        self._url = url
        self._prefetch_count = prefetch_count
        self._reconnect_delay = reconnect_delay
        self._requeue_on_failure = requeue_on_failure

        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queues: dict[str, AbstractQueue] = {}

        # Желаемые подписки переживают переподключения
        self._subscriptions: dict[str, MessageHandler] = {}
        # Очереди, на которые потребитель уже повешен в текущем канале
        self._attached: set[str] = set()

        self._supervisor: asyncio.Task | None = None
        self._connect_lock = asyncio.Lock()
        self._connection_lost = asyncio.Event()

    @property
    def is_connected(self) -> bool:
        """Проверяет, активны ли соединение и канал."""
        return (
            self._connection is not None
            and not self._connection.is_closed
            and self._channel is not None
            and not self._channel.is_closed
        )

    @property
    def subscriptions(self) -> list[str]:
        """Очереди, на которые зарегистрированы обработчики."""
        return list(self._subscriptions)

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ СОЕДИНЕНИЯ
    # =========================================================================

    async def start(self) -> None:
        """Запускает супервизор соединения. Повторный вызов ничего не делает."""
        if self._supervisor is not None and not self._supervisor.done():
            return
        self._supervisor = asyncio.create_task(self._supervise(), name="message-bus-supervisor")

    async def stop(self) -> None:
        """Останавливает супервизор и закрывает соединение."""
        if self._supervisor is not None:
            self._supervisor.cancel()
            with suppress(asyncio.CancelledError):
                await self._supervisor
            self._supervisor = None

        connection = self._connection
        self._reset_connection_state()
        if connection is not None and not connection.is_closed:
            await connection.close()
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def connect(self) -> bool:
        """
        Одна попытка подключения.
        При успехе восстанавливает все зарегистрированные подписки.

        Returns:
            True если соединение установлено (или уже было)
        """
        if self.is_connected:
            return True

        async with self._connect_lock:
            if self.is_connected:
                return True

            # Канал мог закрыться при живом соединении: старое соединение закрываем целиком
            stale = self._connection
            self._reset_connection_state()
            if stale is not None and not stale.is_closed:
                with suppress(Exception):
                    await stale.close()

            await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

            connection: AbstractConnection | None = None
            try:
                connection = await aio_pika.connect(self._url)
                channel = await connection.channel()
                await channel.set_qos(prefetch_count=self._prefetch_count)
            except Exception as e:
                await log_error(f"Ошибка подключения к RabbitMQ: {e}")
                if connection is not None and not connection.is_closed:
                    with suppress(Exception):
                        await connection.close()
                return False

            self._connection = connection
            self._channel = channel
            self._connection_lost.clear()
            connection.close_callbacks.add(self._on_connection_closed)
            channel.close_callbacks.add(self._on_channel_closed)

            await log_info("Подключение к RabbitMQ установлено", type_msg=TypeMsg.INFO)

        await self._replay_subscriptions()
        return True

    async def _supervise(self) -> None:
        """Единственный источник попыток (пере)подключения."""
        while True:
            if not await self.connect():
                await log_warning(
                    f"RabbitMQ недоступен, повтор через {self._reconnect_delay} с"
                )
                await asyncio.sleep(self._reconnect_delay)
                continue

            # Колбэки будят сразу; периодическая проверка ловит закрытие без колбэка
            while self.is_connected and not self._connection_lost.is_set():
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(self._connection_lost.wait(), timeout=self._reconnect_delay)
            await log_warning("Соединение с RabbitMQ потеряно, переподключение...")

    def _on_connection_closed(self, sender: Any, exc: BaseException | None = None) -> None:
        """Колбэк закрытия соединения (вызывается aio_pika)."""
        if sender is not self._connection:
            return
        self._reset_connection_state()
        self._connection_lost.set()

    def _on_channel_closed(self, sender: Any, exc: BaseException | None = None) -> None:
        """
        Колбэк закрытия канала.
        Брокер закрывает канал отдельно от соединения (например, 406 на declare).
        """
        if sender is not self._channel:
            return
        self._channel = None
        self._queues.clear()
        self._attached.clear()
        self._connection_lost.set()

    def _reset_connection_state(self) -> None:
        self._connection = None
        self._channel = None
        self._queues.clear()
        self._attached.clear()

    async def _replay_subscriptions(self) -> None:
        """Вешает потребителей на все желаемые подписки."""
        for queue_name, handler in list(self._subscriptions.items()):
            channel = self._channel
            if channel is None:
                return
            try:
                await self._attach_consumer(channel, queue_name, handler)
            except Exception as e:
                await log_error(f"Не удалось восстановить подписку на {queue_name}: {e}")

    # =========================================================================
    # ПУБЛИКАЦИЯ И ПОДПИСКА
    # =========================================================================

    async def _declare_queue(self, channel: AbstractChannel, queue_name: str) -> AbstractQueue:
        """Объявляет durable-очередь (идемпотентно)."""
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = await channel.declare_queue(queue_name, durable=True)
            self._queues[queue_name] = queue
        return queue

    async def publish(self, queue_name: str, payload: bytes | str) -> None:
        """
        Публикует сообщение в очередь.

        Args:
            queue_name: Имя очереди
            payload: Тело сообщения

        Raises:
            BusUnavailableError: нет соединения или публикация не удалась
        """
        channel = self._channel
        if channel is None or channel.is_closed:
            await log_error(f"Не удалось опубликовать в {queue_name}: нет соединения с RabbitMQ")
            raise BusUnavailableError(queue_name)

        body = payload.encode("utf-8") if isinstance(payload, str) else payload

        try:
            await self._declare_queue(channel, queue_name)
            await channel.default_exchange.publish(
                Message(
                    body=body,
                    content_type="application/json",
                    delivery_mode=DeliveryMode.PERSISTENT,
                ),
                routing_key=queue_name,
            )
        except Exception as e:
            await log_error(f"Ошибка публикации в {queue_name}: {e}")
            raise BusUnavailableError(queue_name) from e

        await log_info(f"Сообщение опубликовано: {queue_name}", type_msg=TypeMsg.DEBUG)

    async def publish_event(self, event: DomainEvent) -> None:
        """Публикует доменное событие в очередь с именем его типа."""
        await self.publish(event.kind, event.to_bytes())

    async def subscribe(self, queue_name: str, handler: MessageHandler) -> None:
        """
        Подписывается на очередь.

        Подписка запоминается и восстанавливается после переподключения.
        Без соединения только логирует предупреждение: потребитель будет
        повешен супервизором после подключения.

        Args:
            queue_name: Имя очереди
            handler: Асинхронный обработчик сообщения
        """
        if queue_name in self._subscriptions:
            await log_warning(f"Подписка на {queue_name} уже зарегистрирована")
            return

        self._subscriptions[queue_name] = handler

        channel = self._channel
        if channel is None or channel.is_closed:
            await log_warning(
                f"Шина недоступна: подписка на {queue_name} будет установлена после подключения"
            )
            return

        try:
            await self._attach_consumer(channel, queue_name, handler)
        except Exception as e:
            # Подписка остаётся желаемой, супервизор повесит её после переподключения
            await log_error(f"Не удалось подписаться на {queue_name}: {e}")

    async def _attach_consumer(
        self,
        channel: AbstractChannel,
        queue_name: str,
        handler: MessageHandler,
    ) -> None:
        if queue_name in self._attached:
            return
        self._attached.add(queue_name)
        try:
            queue = await self._declare_queue(channel, queue_name)
            await queue.consume(self._make_consumer(queue_name, handler))
        except Exception:
            self._attached.discard(queue_name)
            raise

        await log_info(f"Подписка на очередь: {queue_name}", type_msg=TypeMsg.DEBUG)

    def _make_consumer(
        self,
        queue_name: str,
        handler: MessageHandler,
    ) -> Callable[[AbstractIncomingMessage], Awaitable[None]]:
        """Создаёт consumer: обработчик, затем подтверждение."""
        async def consumer(message: AbstractIncomingMessage) -> None:
            envelope = MessageEnvelope(
                queue_name=queue_name,
                body=message.body,
                persistent=message.delivery_mode == DeliveryMode.PERSISTENT,
                redelivered=bool(message.redelivered),
                _delivery=message,
            )
            try:
                await handler(envelope)
            except Exception as e:
                await self._settle_failed(queue_name, message, e)
            else:
                await self._settle(queue_name, message.ack())
            finally:
                envelope.release()

        return consumer

    async def _settle_failed(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        error: Exception,
    ) -> None:
        """
        Решает судьбу сообщения, обработчик которого упал.

        Без requeue_on_failure сообщение подтверждается и теряется.
        Иначе возвращается в очередь один раз; повторная доставка
        с ошибкой отбрасывается.
        """
        if not self._requeue_on_failure:
            await log_error(
                f"Ошибка обработчика {queue_name}: {error}. Сообщение подтверждено без повтора",
                extra={"queue": queue_name},
            )
            await self._settle(queue_name, message.ack())
        elif message.redelivered:
            await log_error(
                f"Повторная ошибка обработчика {queue_name}: {error}. Сообщение отброшено",
                extra={"queue": queue_name},
            )
            await self._settle(queue_name, message.reject(requeue=False))
        else:
            await log_warning(
                f"Ошибка обработчика {queue_name}: {error}. Сообщение возвращено в очередь",
                extra={"queue": queue_name},
            )
            await self._settle(queue_name, message.nack(requeue=True))

    async def _settle(self, queue_name: str, operation: Awaitable[Any]) -> None:
        try:
            await operation
        except Exception as e:
            # Канал закрыт: брокер сам вернёт неподтверждённое сообщение
            await log_error(f"Не удалось подтвердить сообщение из {queue_name}: {e}")

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к RabbitMQ.

        Returns:
            True если подключение работает
        """
        return self.is_connected


def create_message_bus() -> MessageBus:
    """Создаёт шину с настройками из конфигурации."""
    from src.config import settings

    return MessageBus(
        settings.rabbitmq.url,
        prefetch_count=settings.rabbitmq.RABBITMQ_PREFETCH_COUNT,
        reconnect_delay=settings.rabbitmq.RABBITMQ_RECONNECT_DELAY,
        requeue_on_failure=settings.rabbitmq.RABBITMQ_REQUEUE_ON_FAILURE,
    )


async def init_message_bus() -> MessageBus:
    """
    Создаёт шину и запускает супервизор.
    Не ждёт подключения: связь с брокером восстанавливается в фоне.
    """
    from src.config import settings

    bus = create_message_bus()
    await bus.start()
    await log_info(
        f"Супервизор RabbitMQ запущен: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )
    return bus


async def close_message_bus(bus: MessageBus) -> None:
    """Останавливает шину."""
    await bus.stop()
    await log_info("RabbitMQ отключён", type_msg=TypeMsg.INFO)
