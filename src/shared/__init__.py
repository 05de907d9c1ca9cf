# src/shared/__init__.py
"""
Контракты между ride_service и captain_service.

- events: события поездки, публикуемые в очереди RabbitMQ
- models: модель поездки и тела HTTP-запросов
"""
