from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from src.common.constants import RideStatus
from src.common.exceptions import RideConflictError, RideDispatchError
from src.core.notifications import RideAcceptanceBroker
from src.core.rides import RideLifecycleCoordinator
from src.services.http_utils import check_timeout, to_http_exception, wait_while_connected
from src.services.ride_service.dependencies import get_acceptance_broker, get_coordinator
from src.shared.events import RideAcceptedEvent
from src.shared.models.ride import (
    AcceptRideRequest,
    CancelRideRequest,
    CompleteRideRequest,
    CreateRideRequest,
    Ride,
    StartRideRequest,
)

router = APIRouter(prefix="/rides", tags=["Rides"])


@router.post("/create-ride", response_model=Ride, status_code=201)
async def create_ride(
    request: CreateRideRequest,
    coordinator: RideLifecycleCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.create_ride(request.user_id, request.pickup, request.destination)
    except RideDispatchError as e:
        raise to_http_exception(e)


@router.put("/accept-ride", response_model=Ride)
async def accept_ride(
    request: AcceptRideRequest,
    coordinator: RideLifecycleCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.accept_ride(request.ride_id, request.captain_id)
    except RideDispatchError as e:
        raise to_http_exception(e)


@router.put("/start-ride", response_model=Ride)
async def start_ride(
    request: StartRideRequest,
    coordinator: RideLifecycleCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.start_ride(request.ride_id, request.captain_id)
    except RideDispatchError as e:
        raise to_http_exception(e)


@router.put("/complete-ride", response_model=Ride)
async def complete_ride(
    request: CompleteRideRequest,
    coordinator: RideLifecycleCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.complete_ride(
            request.ride_id,
            request.captain_id,
            fare=request.fare,
            distance=request.distance,
        )
    except RideDispatchError as e:
        raise to_http_exception(e)


@router.put("/cancel-ride", response_model=Ride)
async def cancel_ride(
    request: CancelRideRequest,
    coordinator: RideLifecycleCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.cancel_ride(request.ride_id, request.cancelled_by)
    except RideDispatchError as e:
        raise to_http_exception(e)


# Объявлен до /{ride_id}, иначе путь совпал бы с параметром
@router.get("/wait-for-acceptance")
async def wait_for_acceptance(
    http_request: Request,
    ride_id: str = Query(..., alias="rideId"),
    timeout_ms: Optional[int] = Query(None, alias="timeoutMs"),
    coordinator: RideLifecycleCoordinator = Depends(get_coordinator),
    broker: RideAcceptanceBroker = Depends(get_acceptance_broker),
):
    """200 с событием принятия или 204, если капитан не нашёлся за таймаут."""
    check_timeout(timeout_ms)
    try:
        ride = await coordinator.get_ride(ride_id)
    except RideDispatchError as e:
        raise to_http_exception(e)

    if ride.status is RideStatus.CANCELLED:
        raise to_http_exception(RideConflictError(ride.id, ride.status))

    # Уже принята: событие было раньше, чем пассажир начал ждать
    if ride.captain_id is not None:
        return JSONResponse(
            RideAcceptedEvent(
                ride_id=ride.id,
                captain_id=ride.captain_id,
                status=ride.status,
                timestamp=ride.updated_at,
            ).to_payload()
        )

    event = await wait_while_connected(http_request, broker.wait(ride.id, timeout_ms))
    if event is None:
        return Response(status_code=204)
    return JSONResponse(event.to_payload())


@router.get("/{ride_id}", response_model=Ride)
async def get_ride(
    ride_id: str,
    coordinator: RideLifecycleCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.get_ride(ride_id)
    except RideDispatchError as e:
        raise to_http_exception(e)
