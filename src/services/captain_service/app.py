from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from src.common.constants import QueueName, TypeMsg
from src.common.logger import log_info
from src.config import settings
from src.core.notifications import create_captain_broker
from src.infra.message_bus import close_message_bus, init_message_bus
from src.services.captain_service.routes import router
from src.shared.models.common import HealthStatus

SERVICE_NAME = "captain_service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings.validate_required(require_db=False)
    await log_info("Starting Captain Service...", type_msg=TypeMsg.INFO)

    bus = await init_message_bus()
    broker = create_captain_broker()
    await bus.subscribe(QueueName.NEW_RIDE.value, broker.handle_envelope)

    app.state.bus = bus
    app.state.captain_broker = broker

    yield

    # Shutdown
    await log_info("Shutting down Captain Service...", type_msg=TypeMsg.INFO)
    broker.close()
    await close_message_bus(bus)


app = FastAPI(
    title="Captain Service",
    description="Long-poll notifications about new rides for captains",
    version=settings.system.VERSION,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/health", response_model=HealthStatus)
async def health_check(request: Request):
    bus = getattr(request.app.state, "bus", None)
    broker = getattr(request.app.state, "captain_broker", None)

    rabbitmq_ok = bus is not None and await bus.health_check()

    return HealthStatus(
        service=SERVICE_NAME,
        status="healthy" if rabbitmq_ok else "degraded",
        version=settings.system.VERSION,
        dependencies={"rabbitmq": "healthy" if rabbitmq_ok else "unavailable"},
        details={"pendingWaiters": broker.pending_count if broker is not None else 0},
    )
