"""Tareas main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tareas import __version__
from tareas.api.catalog import router as catalog_router
from tareas.api.router import router as tareas_router
from tareas.config import settings
from tareas.db.base import async_session_factory, close_db, init_db
from tareas.engine.errors import TareasError
from tareas.integrations.storage import build_storage
from tareas.notifications.dispatcher import NotificationDispatcher
from tareas.notifications.transport import build_transport
from tareas.observability.metrics import metrics
from tareas.tasks.reminders import start_reminders, stop_reminders

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("tareas")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Tareas server...")
    logger.info(f"Environment: {settings.env.value}")
    logger.info(f"Business timezone: {settings.business_timezone}")

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    notifier = NotificationDispatcher(
        async_session_factory,
        build_transport(),
        icon=settings.push_icon,
        drain_timeout=settings.notification_drain_timeout_seconds,
    )
    app.state.notifier = notifier
    app.state.storage = build_storage()

    # Start background tasks
    if settings.reminders_enabled:
        await start_reminders(async_session_factory, notifier)
        logger.info("Reminder task started")

    yield

    # Cleanup
    logger.info("Shutting down Tareas server...")
    if settings.reminders_enabled:
        await stop_reminders()
    await notifier.drain()
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Tareas",
    description="Departmental task assignment, review and tracking service",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware (explicit allowlist, no wildcards with credentials)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)


@app.exception_handler(TareasError)
async def tareas_error_handler(request: Request, exc: TareasError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    campos: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        campos.setdefault(".".join(loc) or "_", []).append(error.get("msg", "Valor inválido"))
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Datos de entrada inválidos",
            "details": campos,
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    metrics.inc_counter("http.unhandled_errors")
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": "Error interno del servidor"},
    )


# Include API routers
app.include_router(catalog_router)
app.include_router(tareas_router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "tareas.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
