# src/services/ride_service/__init__.py
"""Сервис поездок: создание, переходы статуса, ожидание принятия."""
