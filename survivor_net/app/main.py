"""
Survivor network service.

    uvicorn survivor_net.app.main:app --host 0.0.0.0 --port 61234

Startup builds the process-wide NetworkState, hydrates it from the
durable mirror when ``MIRROR_ENABLED`` is set and starts the periodic
sweep. Shutdown stops the sweep before the mirror's engine is disposed.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from survivor_net.app.api.v1.checkins import router as checkin_router
from survivor_net.app.api.v1.markers import router as marker_router
from survivor_net.app.api.v1.network import router as network_router
from survivor_net.app.api.v1.realtime import router as realtime_router
from survivor_net.app.core.config import settings
from survivor_net.app.core.errors import SurvivorNetworkError, register_error_handlers
from survivor_net.app.core.health import HealthStatus, run_health_check
from survivor_net.app.core.logging_config import get_logger, setup_logging
from survivor_net.app.core.middleware import RequestLoggingMiddleware
from survivor_net.app.state import build_network_state, get_network_state, set_network_state

setup_logging()
logger = get_logger(__name__)

SERVICE_MODULES = [
    "safety-checkins",
    "danger-zones",
    "sos-alerts",
    "threat-reports",
    "zone-chat",
    "zone-markers",
    "realtime",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    state = build_network_state()
    set_network_state(state)
    logger.info(
        "%s v%s starting [%s] mirror=%s sweep=%s",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        "on" if state.mirror.enabled else "off",
        f"{settings.SWEEP_INTERVAL_SECONDS:.0f}s" if settings.SWEEP_ENABLED else "off",
    )

    if state.mirror.enabled:
        try:
            await state.mirror.prepare()
        except SurvivorNetworkError as e:
            logger.warning("Durable mirror unavailable, serving from memory only: %s", e.message)
        else:
            restored = await state.coordinator.hydrate()
            logger.info("Restored %d participant(s) from the durable mirror", restored)
    if settings.SWEEP_ENABLED:
        await state.sweeper.start()

    try:
        yield
    finally:
        await state.sweeper.stop()
        await state.mirror.close()
        logger.info("%s stopped", settings.APP_NAME)


def _add_service_routes(app: FastAPI) -> None:

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": SERVICE_MODULES,
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Every component's status."""
        report = await run_health_check(get_network_state())
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        """503 only when a component is unhealthy; degraded still serves."""
        report = await run_health_check(get_network_state())
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Daily safety check-ins with streak tracking, automatic danger "
            "zones for survivors who stop checking in, SOS alerts, threat "
            "reports and zone chat over a realtime websocket."
        ),
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=not settings.CORS_ALLOW_ALL,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    for router in (checkin_router, network_router, marker_router, realtime_router):
        app.include_router(router)
    _add_service_routes(app)
    return app


app = create_app()


def run() -> None:
    """Console entry point: ``survivor-net``."""
    import uvicorn

    uvicorn.run(
        "survivor_net.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_config=None,
    )
