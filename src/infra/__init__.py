# src/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: PostgreSQL, RabbitMQ.
"""

from src.infra.database import DatabaseManager, get_db
from src.infra.message_bus import MessageBus, MessageEnvelope, create_message_bus

__all__ = [
    "DatabaseManager",
    "get_db",
    "MessageBus",
    "MessageEnvelope",
    "create_message_bus",
]
