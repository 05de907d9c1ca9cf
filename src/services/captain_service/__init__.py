# src/services/captain_service/__init__.py
"""Сервис капитанов: long-poll новых поездок."""
