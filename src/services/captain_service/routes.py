from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.core.notifications import CaptainNotificationBroker
from src.services.captain_service.dependencies import get_captain_broker
from src.services.http_utils import check_timeout, wait_while_connected

router = APIRouter(prefix="/captain", tags=["Captain"])


@router.get("/wait-for-ride")
async def wait_for_ride(
    request: Request,
    captain_id: str = Query(..., alias="captainId"),
    timeout_ms: Optional[int] = Query(None, alias="timeoutMs"),
    broker: CaptainNotificationBroker = Depends(get_captain_broker),
):
    """200 с новой поездкой или 204, если за таймаут ничего не пришло."""
    check_timeout(timeout_ms)

    event = await wait_while_connected(request, broker.wait(timeout_ms))
    if event is None:
        return Response(status_code=204)

    await log_info(
        f"Капитан {captain_id} получил поездку {event.ride_id}",
        type_msg=TypeMsg.DEBUG,
    )
    return JSONResponse(event.to_payload())
