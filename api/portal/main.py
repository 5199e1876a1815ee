from contextlib import asynccontextmanager
import asyncio
import logging
import time

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request

from portal.api.router import api_router
from portal.api.sockets import register_socket_handlers
from portal.core.config import get_settings
from portal.core.errors import register_exception_handlers
from portal.core.telemetry import (
    TelemetryRuntime,
    install_fatal_handlers,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from portal.services.bootstrap import BootstrapError, ensure_admin
from portal.services.notifications import get_socket_server
from portal.services.repository import get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    install_fatal_handlers(asyncio.get_running_loop())
    runtime_settings = get_settings()
    repository = get_repository()
    try:
        await repository.ensure_schema()
        await ensure_admin(
            repository,
            email=runtime_settings.admin_email,
            password=runtime_settings.admin_password,
            bcrypt_rounds=runtime_settings.bcrypt_rounds,
        )
    except BootstrapError as exc:
        logger.critical("startup aborted: %s", exc)
        await repository.close()
        get_repository.cache_clear()
        raise
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        # Ensure asyncpg pool shuts down on app teardown.
        await get_repository().close()
        get_repository.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)
register_exception_handlers(app)

_origins = [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials="*" not in _origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)

sio = get_socket_server()
register_socket_handlers(sio)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
