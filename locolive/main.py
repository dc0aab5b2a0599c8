import asyncio
import logging
import time
import uuid

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from locolive.auth import router as auth_router
from locolive.config import settings
from locolive.core import exceptions
from locolive.core.logging import configure_logging
from locolive.core.tasks import TaskSupervisor
from locolive.database import AsyncSessionLocal, create_all_tables
from locolive.realtime.hub import RealtimeHub
from locolive.routers.chat import router as chat_router
from locolive.routers.connections import router as connections_router
from locolive.routers.notifications import router as notifications_router
from locolive.routers.realtime import router as realtime_router
from locolive.routers.stories import router as stories_router
from locolive.routers.users import router as users_router
from locolive.services.maintenance_service import MaintenanceService
from locolive.services.notification_service import Notifier
from locolive.services.push import get_push_provider

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# CORS must be added before other middleware
configured_origins = [str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS]
default_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]
allow_origins = configured_origins if settings.APP_ENV == "production" else list(dict.fromkeys([*default_origins, *configured_origins]))
allow_methods = ["*"] if settings.CORS_ALLOW_ALL_METHODS else settings.CORS_ALLOW_METHODS
allow_headers = ["*"] if settings.CORS_ALLOW_ALL_HEADERS else settings.CORS_ALLOW_HEADERS

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=allow_methods,
    allow_headers=allow_headers,
)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "%s %s -> %s (%.1fms) request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request_id,
    )
    return response

# Exception Handlers
app.add_exception_handler(exceptions.DomainError, exceptions.domain_exception_handler)  # type: ignore
app.add_exception_handler(RequestValidationError, exceptions.validation_exception_handler)  # type: ignore
app.add_exception_handler(IntegrityError, exceptions.integrity_exception_handler)  # type: ignore

# Routers
app.include_router(auth_router.router, prefix=f"{settings.API_V1_STR}/auth", tags=["Auth"])
app.include_router(users_router, prefix=f"{settings.API_V1_STR}/users", tags=["Users"])
app.include_router(chat_router, prefix=f"{settings.API_V1_STR}/chats", tags=["Chat"])
app.include_router(connections_router, prefix=f"{settings.API_V1_STR}/connections", tags=["Connections"])
app.include_router(notifications_router, prefix=f"{settings.API_V1_STR}/notifications", tags=["Notifications"])
app.include_router(stories_router, prefix=f"{settings.API_V1_STR}/stories", tags=["Stories"])
app.include_router(realtime_router, prefix=settings.API_V1_STR, tags=["Realtime"])


@app.get("/health")
async def health_check(request: Request):
    hub: RealtimeHub | None = getattr(request.app.state, "realtime", None)
    live_connections = 0
    if hub is not None and hub.registry.running:
        live_connections = (await hub.registry.snapshot()).total_connections
    return {"status": "ok", "live_connections": live_connections}


@app.get("/healthz")
async def healthz():
    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.exception("Health check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="database unavailable",
        ) from exc
    return {"status": "ok", "database": "ok"}

@app.get("/")
async def root():
    return {"message": "Welcome to the LocoLive API", "docs": "/docs"}


async def _run_maintenance_once() -> None:
    async with AsyncSessionLocal() as db:
        summary = await MaintenanceService.run(db)
    logger.info(
        "Maintenance run complete: refresh_tokens=%s reset_tokens=%s sessions=%s stories=%s",
        summary["refresh_tokens_deleted"],
        summary["reset_tokens_deleted"],
        summary["sessions_deactivated"],
        summary["stories_deleted"],
    )


async def _maintenance_loop() -> None:
    while True:
        await asyncio.sleep(settings.CLEANUP_INTERVAL_MINUTES * 60)
        try:
            await _run_maintenance_once()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Maintenance iteration failed")


async def start_runtime(app: FastAPI) -> None:
    """Create the process-wide realtime and background machinery."""
    hub = RealtimeHub(queue_size=settings.WS_SEND_QUEUE_SIZE)
    await hub.start()
    supervisor = TaskSupervisor()
    app.state.realtime = hub
    app.state.supervisor = supervisor
    app.state.notifier = Notifier(supervisor, AsyncSessionLocal, get_push_provider())
    app.state.maintenance_task = None
    if settings.CLEANUP_ENABLED:
        app.state.maintenance_task = asyncio.create_task(_maintenance_loop(), name="maintenance")
        logger.info("Maintenance loop started (interval=%smin)", settings.CLEANUP_INTERVAL_MINUTES)
    else:
        logger.info("Maintenance loop disabled by config")


async def stop_runtime(app: FastAPI) -> None:
    maintenance_task: asyncio.Task | None = getattr(app.state, "maintenance_task", None)
    if maintenance_task and not maintenance_task.done():
        maintenance_task.cancel()
        try:
            await maintenance_task
        except asyncio.CancelledError:
            pass
    app.state.maintenance_task = None

    supervisor: TaskSupervisor | None = getattr(app.state, "supervisor", None)
    if supervisor is not None:
        await supervisor.shutdown(settings.BACKGROUND_SHUTDOWN_GRACE_SECONDS)

    hub: RealtimeHub | None = getattr(app.state, "realtime", None)
    if hub is not None:
        await hub.stop()


@app.on_event("startup")
async def startup() -> None:
    _validate_security_settings()
    if settings.DB_AUTO_CREATE:
        await create_all_tables()
    await start_runtime(app)


@app.on_event("shutdown")
async def shutdown() -> None:
    await stop_runtime(app)


def _validate_security_settings() -> None:
    if settings.APP_ENV != "production":
        return

    errors: list[str] = []
    if len(settings.SECRET_KEY.strip()) < 24:
        errors.append("SECRET_KEY must be at least 24 characters in production.")
    if not settings.BACKEND_CORS_ORIGINS:
        errors.append("BACKEND_CORS_ORIGINS must be explicitly configured in production.")
    if settings.DB_AUTO_CREATE:
        errors.append("DB_AUTO_CREATE must be disabled in production; run migrations instead.")

    if errors:
        raise RuntimeError("; ".join(errors))
