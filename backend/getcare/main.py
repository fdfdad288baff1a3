"""FastAPI application entry point.

Deployment Requirements:
- Binds to PORT from environment variable
- Health endpoint at /health for platform health checks
- Graceful shutdown with SIGTERM handling
- All logs to stdout/stderr

Error Logging Requirements:
- Log all incoming requests with method, path, request_id
- Log request body at DEBUG level (sanitize sensitive fields)
- Log response status and timing for every request
- Return structured error responses: {"error": str, "code": str, "request_id": str}
- Log 4xx errors at WARNING, 5xx at ERROR
"""

import asyncio
import json
import logging
import signal
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from getcare.api.v1 import router as api_v1_router
from getcare.core.cache import TTLCache
from getcare.core.config import get_settings
from getcare.core.database import db_manager
from getcare.core.logging import get_logger, setup_logging
from getcare.core.scheduler import scheduler_manager
from getcare.integrations.claude import close_claude, init_claude
from getcare.integrations.images import close_images, init_images
from getcare.integrations.retrieval import RetrievalClient
from getcare.integrations.storage import close_storage, init_storage
from getcare.services.author_persona import PersonaService
from getcare.services.generation_queue import GenerationQueue

# Set up logging before anything else
setup_logging()
logger = get_logger(__name__)

# Sensitive fields to redact from request body logs
SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "api_key",
    "authorization",
    "notify_email",
}

# Error codes for HTTP exceptions raised by the routers
HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_422_UNPROCESSABLE_ENTITY: "VALIDATION_ERROR",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMIT_EXCEEDED",
}


def sanitize_body(body: dict[str, Any]) -> dict[str, Any]:
    """Redact sensitive fields from request body for logging."""
    if not isinstance(body, dict):
        return body
    sanitized: dict[str, Any] = {}
    for key, value in body.items():
        if key.lower() in SENSITIVE_FIELDS:
            sanitized[key] = "****"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_body(value)
        else:
            sanitized[key] = value
    return sanitized


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all incoming requests with timing and request_id."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.monotonic()
        method = request.method
        path = request.url.path

        logger.info(
            "Request started",
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "query_params": str(request.query_params)
                if request.query_params
                else None,
            },
        )

        # Log request body at DEBUG level (for non-GET requests)
        if method not in ("GET", "HEAD", "OPTIONS") and logger.isEnabledFor(
            logging.DEBUG
        ):
            body = await request.body()
            if body:
                try:
                    logger.debug(
                        "Request body",
                        extra={
                            "request_id": request_id,
                            "body": sanitize_body(json.loads(body)),
                        },
                    )
                except (json.JSONDecodeError, UnicodeDecodeError):
                    logger.debug(
                        "Request body (non-JSON)",
                        extra={"request_id": request_id, "body_length": len(body)},
                    )

        response = await call_next(request)

        duration_ms = (time.monotonic() - start_time) * 1000
        status_code = response.status_code

        response.headers["X-Request-ID"] = request_id

        log_extra = {
            "request_id": request_id,
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        }

        if status_code >= 500:
            logger.error("Request failed", extra=log_extra)
        elif status_code >= 400:
            logger.warning("Request error", extra=log_extra)
        else:
            logger.info("Request completed", extra=log_extra)

        return response


async def recover_stuck_jobs() -> int:
    """Scheduled job: requeue generation jobs stuck in 'running'."""
    queue = GenerationQueue(db_manager.session_factory)
    return await queue.recover_stuck_jobs()


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager for startup/shutdown.

    Handles:
    - Database initialization
    - LLM, storage and image client initialization
    - Stuck-job recovery schedule
    - Graceful shutdown on SIGTERM
    """
    settings = get_settings()
    logger.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        db_manager.init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    # Initialize external API clients (each logs its own availability)
    claude_client = await init_claude()
    if not claude_client.available:
        logger.warning("Content generation will fail until ANTHROPIC_API_KEY is set")

    storage_client = await init_storage()
    await init_images(storage_client)

    if not app.state.retrieval.available:
        logger.info("Retrieval context not configured, prompts run without it")

    if scheduler_manager.init_scheduler():
        scheduler_manager.add_interval_job(
            recover_stuck_jobs,
            job_id="recover_stuck_jobs",
            name="Recover stuck generation jobs",
            minutes=settings.queue_recovery_interval_minutes,
        )
        if scheduler_manager.start():
            logger.info("Scheduler started")
        else:
            logger.warning("Failed to start scheduler")
    else:
        logger.info("Scheduler not initialized (disabled or error)")

    shutdown_event = asyncio.Event()

    def handle_sigterm(*args: Any) -> None:
        logger.info("Received SIGTERM, initiating graceful shutdown")
        shutdown_event.set()

    # Register signal handlers (only in main thread)
    try:
        signal.signal(signal.SIGTERM, handle_sigterm)
        signal.signal(signal.SIGINT, handle_sigterm)
    except ValueError:
        logger.debug("Signal handlers not installed (not in main thread)")

    yield

    logger.info("Shutting down application")

    # Stop scheduler first (allows running jobs to complete)
    scheduler_manager.stop(wait=True)
    logger.info("Scheduler stopped")

    await app.state.retrieval.close()
    await close_images()
    await close_storage()
    await close_claude()
    await db_manager.close()
    logger.info("Application shutdown complete")


def _error_response(
    request: Request, status_code: int, message: str, code: str
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "code": code, "request_id": request_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Shared per-process components; endpoints read these from app.state
    app.state.cache = TTLCache()
    app.state.persona_service = PersonaService(
        cache=app.state.cache, cache_ttl=settings.persona_cache_ttl
    )
    app.state.retrieval = RetrievalClient(cache=app.state.cache)

    # Request logging middleware (added first, runs last)
    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware - use FRONTEND_URL for production, allow all origins otherwise
    cors_origins: list[str] = ["*"]
    if settings.frontend_url:
        cors_origins = [settings.frontend_url]
        logger.info(
            "CORS configured for production",
            extra={"allowed_origins": cors_origins},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle validation errors with structured response."""
        errors = exc.errors()
        error_msg = "; ".join(
            f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in errors
        )
        logger.warning(
            "Validation error",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "errors": str(errors),
            },
        )
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_msg,
            "VALIDATION_ERROR",
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Render HTTPExceptions in the structured error shape."""
        return _error_response(
            request,
            exc.status_code,
            str(exc.detail),
            HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors with structured response."""
        logger.error(
            "Unhandled exception",
            extra={
                "request_id": getattr(request.state, "request_id", "unknown"),
                "error_type": type(exc).__name__,
                "error_message": str(exc),
            },
            exc_info=True,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An internal error occurred. Please try again later.",
            "INTERNAL_ERROR",
        )

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Returns {"status": "ok"} if the service is running."""
        return {"status": "ok"}

    @app.get("/health/db", tags=["Health"])
    async def database_health() -> dict[str, str | bool]:
        """Check database connectivity."""
        is_healthy = await db_manager.check_connection()
        return {
            "status": "ok" if is_healthy else "error",
            "database": is_healthy,
        }

    @app.get("/health/scheduler", tags=["Health"])
    async def scheduler_health() -> dict[str, Any]:
        """Check scheduler status."""
        return scheduler_manager.check_health()

    app.include_router(api_v1_router)

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "getcare.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
