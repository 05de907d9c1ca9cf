#!/usr/bin/env python3
# entrypoint_captain_service.py
"""
Точка входа для Captain Service.
Порт: settings.deployment.CAPTAIN_SERVICE_PORT
"""

import asyncio
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings
from src.common.logger import log_info, setup_logging
from src.common.constants import TypeMsg


async def main() -> None:
    """Запуск Captain Service."""
    setup_logging()
    await log_info(
        f"Запуск Captain Service на порту {settings.deployment.CAPTAIN_SERVICE_PORT}",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.captain_service.app:app",
        host="0.0.0.0",
        port=settings.deployment.CAPTAIN_SERVICE_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
