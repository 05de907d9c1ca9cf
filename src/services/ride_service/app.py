from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from src.common.constants import QueueName, TypeMsg
from src.common.logger import log_info
from src.config import settings
from src.core.notifications import create_acceptance_broker
from src.core.rides import RideLifecycleCoordinator, RideRepository
from src.infra.database import close_db, init_db
from src.infra.message_bus import close_message_bus, init_message_bus
from src.services.ride_service.routes import router
from src.shared.models.common import HealthStatus

SERVICE_NAME = "ride_service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings.validate_required()
    await log_info("Starting Ride Service...", type_msg=TypeMsg.INFO)

    db = await init_db()
    bus = await init_message_bus()
    broker = create_acceptance_broker()
    await bus.subscribe(QueueName.RIDE_ACCEPTED.value, broker.handle_envelope)

    app.state.db = db
    app.state.bus = bus
    app.state.acceptance_broker = broker
    app.state.coordinator = RideLifecycleCoordinator(RideRepository(db), bus)

    yield

    # Shutdown
    await log_info("Shutting down Ride Service...", type_msg=TypeMsg.INFO)
    broker.close()
    await close_message_bus(bus)
    await close_db()


app = FastAPI(
    title="Ride Service",
    description="Ride lifecycle: create, accept, start, complete, cancel",
    version=settings.system.VERSION,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/health", response_model=HealthStatus)
async def health_check(request: Request):
    db = getattr(request.app.state, "db", None)
    bus = getattr(request.app.state, "bus", None)
    broker = getattr(request.app.state, "acceptance_broker", None)

    postgres_ok = db is not None and await db.health_check()
    rabbitmq_ok = bus is not None and await bus.health_check()

    return HealthStatus(
        service=SERVICE_NAME,
        status="healthy" if postgres_ok and rabbitmq_ok else "degraded",
        version=settings.system.VERSION,
        dependencies={
            "postgres": "healthy" if postgres_ok else "unavailable",
            "rabbitmq": "healthy" if rabbitmq_ok else "unavailable",
        },
        details={"pendingWaiters": broker.pending_count if broker is not None else 0},
    )
