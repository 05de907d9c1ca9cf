# src/common/exceptions.py
"""
Иерархия исключений сервиса диспетчеризации поездок.
"""

from __future__ import annotations


class RideDispatchError(Exception):
    """Базовое исключение проекта."""


class ConfigurationError(RideDispatchError):
    """Обязательная настройка отсутствует. Останавливает запуск."""


class BusUnavailableError(RideDispatchError):
    """Нет соединения с брокером сообщений."""

    def __init__(self, queue_name: str | None = None) -> None:
        self.queue_name = queue_name
        message = "Шина сообщений недоступна"
        if queue_name:
            message = f"{message} (очередь {queue_name})"
        super().__init__(message)


class RideNotFoundError(RideDispatchError):
    """Поездка не найдена."""

    def __init__(self, ride_id: str) -> None:
        self.ride_id = ride_id
        super().__init__(f"Ride {ride_id} not found")


class RideConflictError(RideDispatchError):
    """Поездка не в том статусе, который требует переход."""

    def __init__(self, ride_id: str, current_status: str, message: str | None = None) -> None:
        self.ride_id = ride_id
        self.current_status = str(current_status)
        super().__init__(message or f"Ride already {self.current_status}")


class RideValidationError(RideDispatchError, ValueError):
    """Некорректные входные данные поездки."""
