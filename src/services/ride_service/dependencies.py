from fastapi import Request

from src.core.notifications import RideAcceptanceBroker
from src.core.rides import RideLifecycleCoordinator


def get_coordinator(request: Request) -> RideLifecycleCoordinator:
    return request.app.state.coordinator


def get_acceptance_broker(request: Request) -> RideAcceptanceBroker:
    return request.app.state.acceptance_broker
