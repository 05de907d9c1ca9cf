# src/config/__init__.py
"""
Конфигурация сервисов поездок: config/config.json с переопределениями из окружения.
"""

from src.config.loader import Settings, get_settings, load_config_json, settings

__all__ = ["Settings", "get_settings", "load_config_json", "settings"]
