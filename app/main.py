"""
FastAPI Brand Share API application.

Main application entry point that configures:
- CORS middleware
- API routers
- Database lifecycle
- Logging system
- Exception handlers
- Prometheus metrics (scraping + optional Pushgateway)
- Background cleanup loop
- Graceful shutdown
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.database import close_db, init_db
from app.exceptions import RateLimitedError, ShareExportError
from app.jobs.cleanup import cleanup_loop
from app.middlewares.logging_middleware import LoggingMiddleware
from app.middlewares.rate_limit_middleware import limiter, setup_rate_limit_exception_handler
from app.middlewares.request_tracking_middleware import RequestTrackingMiddleware
from app.routers import (
    auth_router,
    downloads_router,
    exports_router,
    health_router,
    public_share_router,
    shares_router,
)
from app.utils.logger import get_request_id, log_error, log_info, log_warning, setup_logging
from app.utils.prometheus_metrics import (
    exceptions_total,
    in_flight_requests,
    pushgateway_loop,
    ready,
    setup_prometheus,
)

settings = get_settings()
logger = logging.getLogger("app")

setup_logging()

SHUTDOWN_DRAIN_SECONDS = 30.0


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup: create tables, start the Pushgateway and cleanup loops.

    Shutdown:
    1. ready=0 so health checks fail and the load balancer stops routing
    2. wait up to 30s for in-flight requests
    3. stop background loops
    4. dispose the engine
    """
    await init_db()
    ready.set(1)
    log_info(
        "Application startup completed",
        event="lifecycle",
        version=settings.app_version,
        environment=settings.environment.value,
    )

    pushgateway_task = asyncio.create_task(pushgateway_loop())
    cleanup_task = asyncio.create_task(cleanup_loop())

    yield

    ready.set(0)
    log_info("Application shutdown initiated", event="lifecycle")

    deadline = time.monotonic() + SHUTDOWN_DRAIN_SECONDS
    while in_flight_requests._value.get() > 0 and time.monotonic() < deadline:
        await asyncio.sleep(0.5)
    remaining = int(in_flight_requests._value.get())
    if remaining:
        log_warning("Shutdown timeout reached", event="lifecycle", in_flight=remaining)

    await _cancel(cleanup_task)
    await _cancel(pushgateway_task)
    await close_db()

    log_info("Graceful shutdown completed", event="lifecycle")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
## Brand Share API

Sharing and exporting of generated logo designs.

### Features
- **Shares**: public or password-protected links to a logo generation, with view analytics
- **Exports**: PDF, CSV and JSON artifacts with an expiry and download tracking
- **Cleanup**: periodic purge of expired exports and stale share data

### Authentication
Owner endpoints require a Bearer token from `/auth/login`.
Public share pages and `/downloads/{uuid}` need no authentication.
    """,
    openapi_tags=[
        {"name": "Authentication", "description": "User registration and login"},
        {"name": "Shares", "description": "Share management for owners"},
        {"name": "Public Shares", "description": "Public access to shared items"},
        {"name": "Exports", "description": "Export creation, listing and downloads"},
    ],
    lifespan=lifespan,
)

# slowapi looks the limiter up on app.state
app.state.limiter = limiter

setup_prometheus(app)
setup_rate_limit_exception_handler(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestTrackingMiddleware)


@app.exception_handler(ShareExportError)
async def share_export_error_handler(request: Request, exc: ShareExportError):
    """Domain errors: JSON body from to_dict(), Retry-After on 429."""
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
    if exc.status_code >= 500:
        log_warning(
            "Service temporarily unavailable",
            event="exception",
            error_code=exc.error_code,
            http_path=request.url.path,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unhandled exceptions: ERROR log and a 500 carrying the request id."""
    exceptions_total.inc()
    rid = get_request_id()
    log_error(
        "Unhandled exception occurred",
        exc_info=True,
        error_type=type(exc).__name__,
        error_message=str(exc),
        error_code="INTERNAL_SERVER_ERROR",
        http_method=request.method,
        http_path=request.url.path,
        request_id=rid,
        event="exception",
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "request_id": rid},
    )


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(shares_router)
app.include_router(public_share_router)
app.include_router(exports_router)
app.include_router(downloads_router)


@app.get("/", tags=["Root"], summary="API information")
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
