# src/services/__init__.py
"""
Микросервисы приложения.

Архитектура:
- Каждый сервис: независимое FastAPI-приложение
- PostgreSQL как источник истины по поездкам
- Коммуникация через RabbitMQ (durable-очереди) и HTTP long-poll

Сервисы:
- ride_service: жизненный цикл поездки + ожидание принятия пассажиром
- captain_service: long-poll новых поездок для капитанов
"""

__all__: list[str] = []
