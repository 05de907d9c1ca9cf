# src/services/http_utils.py
"""
Общие помощники HTTP-слоя: маппинг доменных ошибок и long-poll ожидание.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Awaitable, Optional, TypeVar

from fastapi import HTTPException, Request

from src.common.constants import TypeMsg
from src.common.exceptions import (
    RideConflictError,
    RideDispatchError,
    RideNotFoundError,
    RideValidationError,
)
from src.common.logger import log_info

T = TypeVar("T")

DISCONNECT_POLL_INTERVAL = 0.5


def to_http_exception(error: RideDispatchError) -> HTTPException:
    """Переводит доменную ошибку в HTTP-ответ."""
    if isinstance(error, RideNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, RideConflictError):
        return HTTPException(
            status_code=409,
            detail={"message": str(error), "currentStatus": error.current_status},
        )
    if isinstance(error, RideValidationError):
        return HTTPException(status_code=400, detail=str(error))
    return HTTPException(status_code=500, detail="Internal error")


def check_timeout(timeout_ms: Optional[int]) -> None:
    """Неположительный таймаут отклоняется, слишком большой обрезает брокер."""
    if timeout_ms is not None and timeout_ms <= 0:
        raise HTTPException(status_code=400, detail="timeoutMs must be positive")


async def wait_while_connected(
    request: Request,
    waiting: Awaitable[Optional[T]],
    poll_interval: float = DISCONNECT_POLL_INTERVAL,
) -> Optional[T]:
    """
    Ждёт результат, пока клиент на связи.
    Если клиент отключился, ожидание отменяется и waiter снимается с учёта.
    """
    wait_task = asyncio.ensure_future(waiting)
    try:
        while True:
            done, _ = await asyncio.wait({wait_task}, timeout=poll_interval)
            if done:
                return wait_task.result()
            if await request.is_disconnected():
                await log_info(
                    f"Клиент отключился от {request.url.path}, ожидание отменено",
                    type_msg=TypeMsg.DEBUG,
                )
                wait_task.cancel()
                with suppress(asyncio.CancelledError):
                    await wait_task
                return None
    finally:
        if not wait_task.done():
            wait_task.cancel()
