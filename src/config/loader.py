# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Хосты и секреты переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.common.exceptions import ConfigurationError


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации (можно переопределить CONFIG_PATH)."""
    override = os.getenv("CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "ride_dispatch"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    # ride_service, captain_service или all; пустое значение: режим из аргумента командной строки
    COMPONENT_MODE: str = ""


class DeploymentSettings(BaseModel):
    """Адреса и порты сервисов."""
    RIDE_SERVICE_HOST: str = "ride_service"
    RIDE_SERVICE_PORT: int = 3003
    CAPTAIN_SERVICE_HOST: str = "captain_service"
    CAPTAIN_SERVICE_PORT: int = 3002


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допускаются только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный LOG_FORMAT: {v}")
        return v


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "rides"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 30

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения, если не задан."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ."""
    RABBITMQ_URL: str | None = None
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_PREFETCH_COUNT: int = Field(1, ge=1)
    RABBITMQ_RECONNECT_DELAY: float = Field(5.0, gt=0)
    RABBITMQ_REQUEUE_ON_FAILURE: bool = True

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        if self.RABBITMQ_URL:
            return self.RABBITMQ_URL
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class LongPollSettings(BaseModel):
    """Настройки long-poll ожидания."""
    WAIT_TIMEOUT_MS: int = Field(30000, gt=0)
    MAX_WAIT_TIMEOUT_MS: int = Field(30000, gt=0)


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

def _pick(data: dict[str, Any], key: str, default: Any, from_env: bool = False) -> Any:
    """Значение из окружения (если разрешено), затем из config.json, затем по умолчанию."""
    if from_env:
        env_value = os.getenv(key)
        if env_value is not None:
            return env_value
    return data.get(key, default)


class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    long_poll: LongPollSettings = Field(default_factory=LongPollSettings)

    model_config = SettingsConfigDict(
        env_prefix="RIDE_DISPATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Хосты, порты и секреты переопределяются из переменных окружения.
        """
        data = load_config_json(path)

        return cls(
            system=SystemSettings(
                PROJECT_NAME=_pick(data, "PROJECT_NAME", "ride_dispatch"),
                VERSION=_pick(data, "VERSION", "1.0.0"),
                DEBUG=_pick(data, "DEBUG", False, from_env=True),
                ENVIRONMENT=_pick(data, "ENVIRONMENT", "development", from_env=True),
                COMPONENT_MODE=_pick(data, "COMPONENT_MODE", "", from_env=True),
            ),
            deployment=DeploymentSettings(
                RIDE_SERVICE_HOST=_pick(data, "RIDE_SERVICE_HOST", "ride_service", from_env=True),
                RIDE_SERVICE_PORT=_pick(data, "RIDE_SERVICE_PORT", 3003, from_env=True),
                CAPTAIN_SERVICE_HOST=_pick(data, "CAPTAIN_SERVICE_HOST", "captain_service", from_env=True),
                CAPTAIN_SERVICE_PORT=_pick(data, "CAPTAIN_SERVICE_PORT", 3002, from_env=True),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=_pick(data, "LOG_LEVEL", "DEBUG", from_env=True),
                LOG_FORMAT=_pick(data, "LOG_FORMAT", "colored"),
                LOG_TO_FILE=_pick(data, "LOG_TO_FILE", False),
                LOG_FILE_PATH=_pick(data, "LOG_FILE_PATH", "logs/app.log"),
                LOG_MAX_BYTES=_pick(data, "LOG_MAX_BYTES", 10485760),
            ),
            database=DatabaseSettings(
                DB_HOST=_pick(data, "DB_HOST", "localhost", from_env=True),
                DB_PORT=_pick(data, "DB_PORT", 5432, from_env=True),
                DB_NAME=_pick(data, "DB_NAME", "rides", from_env=True),
                DB_USER=_pick(data, "DB_USER", "postgres", from_env=True),
                DB_PASSWORD=_pick(data, "DB_PASSWORD", "", from_env=True),
                DB_MIN_POOL_SIZE=_pick(data, "DB_MIN_POOL_SIZE", 2),
                DB_MAX_POOL_SIZE=_pick(data, "DB_MAX_POOL_SIZE", 10),
                DB_COMMAND_TIMEOUT=_pick(data, "DB_COMMAND_TIMEOUT", 30),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_URL=_pick(data, "RABBITMQ_URL", None, from_env=True),
                RABBITMQ_HOST=_pick(data, "RABBITMQ_HOST", "localhost", from_env=True),
                RABBITMQ_PORT=_pick(data, "RABBITMQ_PORT", 5672, from_env=True),
                RABBITMQ_USER=_pick(data, "RABBITMQ_USER", "guest", from_env=True),
                RABBITMQ_PASSWORD=_pick(data, "RABBITMQ_PASSWORD", "guest", from_env=True),
                RABBITMQ_VHOST=_pick(data, "RABBITMQ_VHOST", "/"),
                RABBITMQ_PREFETCH_COUNT=_pick(data, "RABBITMQ_PREFETCH_COUNT", 1),
                RABBITMQ_RECONNECT_DELAY=_pick(data, "RABBITMQ_RECONNECT_DELAY", 5.0),
                RABBITMQ_REQUEUE_ON_FAILURE=_pick(data, "RABBITMQ_REQUEUE_ON_FAILURE", True, from_env=True),
            ),
            long_poll=LongPollSettings(
                WAIT_TIMEOUT_MS=_pick(data, "WAIT_TIMEOUT_MS", 30000),
                MAX_WAIT_TIMEOUT_MS=_pick(data, "MAX_WAIT_TIMEOUT_MS", 30000),
            ),
        )

    def validate_required(self, require_db: bool = True) -> None:
        """
        Проверяет обязательные цели подключения.
        Вызывается при старте сервиса; ошибка останавливает запуск.

        Args:
            require_db: Нужен ли сервису PostgreSQL (captain_service работает без БД)
        """
        if not (self.rabbitmq.RABBITMQ_URL or self.rabbitmq.RABBITMQ_HOST):
            raise ConfigurationError("Не задан адрес RabbitMQ (RABBITMQ_URL или RABBITMQ_HOST)")
        if require_db and not self.database.DB_HOST:
            raise ConfigurationError("Не задан адрес PostgreSQL (DB_HOST)")


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


settings = get_settings()
