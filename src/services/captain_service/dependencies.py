from fastapi import Request

from src.core.notifications import CaptainNotificationBroker


def get_captain_broker(request: Request) -> CaptainNotificationBroker:
    return request.app.state.captain_broker
