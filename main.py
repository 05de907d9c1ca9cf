#!/usr/bin/env python3
# main.py
"""
Главная точка входа.
Запускает ride_service, captain_service или оба сервиса в одном процессе.

Usage:
    python main.py ride_service
    python main.py captain_service
    python main.py all
"""

from __future__ import annotations

import asyncio
import sys

import uvicorn

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, setup_logging
from src.config import settings

SERVICES = {
    "ride_service": ("src.services.ride_service.app:app", "RIDE_SERVICE_PORT"),
    "captain_service": ("src.services.captain_service.app:app", "CAPTAIN_SERVICE_PORT"),
}


async def run_service(name: str) -> None:
    """Запускает один сервис через uvicorn."""
    app_path, port_key = SERVICES[name]
    port = getattr(settings.deployment, port_key)
    await log_info(f"Запуск {name} на порту {port}", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        app_path,
        host="0.0.0.0",
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    await server.serve()


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: ride_service, captain_service или all.
              Если None, берётся из COMPONENT_MODE.
    """
    setup_logging()

    mode = mode or settings.system.COMPONENT_MODE or "all"
    if mode != "all" and mode not in SERVICES:
        await log_error(f"Неизвестный режим запуска: {mode}")
        sys.exit(2)

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: режим '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    if mode == "all":
        await asyncio.gather(*(run_service(name) for name in SERVICES))
    else:
        await run_service(mode)


if __name__ == "__main__":
    try:
        asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
    except KeyboardInterrupt:
        print("\nПолучен сигнал остановки, завершение работы...")
