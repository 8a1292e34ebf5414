"""
FastAPI application entry point.
Configures routes, error handlers and lifecycle events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.config import settings
from app.database import close_db, get_db_context
from app.errors import PaymentError
from app.logging_config import configure_logging
from app.providers.registry import build_provider_registry
from app.redis import RedisClient
from app.services.auth_client import AuthClient
import logging

# Import routers - MUST BE AT TOP LEVEL
from app.api.payments import router as payments_router
from app.api.webhooks.provider import router as webhook_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    # Startup
    configure_logging()
    logging.info("Starting up payments service...")

    app.state.providers = build_provider_registry(settings)
    app.state.auth_client = AuthClient()

    # Initialize Redis
    try:
        RedisClient.get_client()
    except Exception as e:
        logging.warning(f"Failed to initialize Redis: {e}")

    yield

    # Shutdown
    await RedisClient.close()
    await close_db()
    logging.info("Shutting down...")


app = FastAPI(
    title="Payments",
    description="Payment lifecycle service with idempotent provider webhooks",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    """Map payment errors to their HTTP status."""
    log = logging.error if exc.status_code >= 500 else logging.warning
    log(
        f"{request.method} {request.url.path} - {exc.status_code} - {exc}",
        extra={"reference_id": exc.reference_id, "operation": exc.operation},
    )

    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "error",
            "error": type(exc).__name__,
            "message": exc.message,
            "reference_id": exc.reference_id,
            "retryable": exc.retryable,
        },
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are validation failures (400), like ValidationError."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{field}: {error.get('msg')}" if field else error.get("msg", ""))
    message = "; ".join(problems) or "Invalid request"

    logging.warning(f"{request.method} {request.url.path} - 400 - {message}")
    return JSONResponse(
        status_code=400,
        content={
            "status": "error",
            "error": "ValidationError",
            "message": message,
            "reference_id": None,
            "retryable": False,
        },
    )


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint (database + redis)."""
    checks = {}

    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
        checks["database"] = "up"
    except Exception as e:
        logging.warning(f"Database health check failed: {e}")
        checks["database"] = "down"

    try:
        pong = await RedisClient.get_client().ping()
        checks["redis"] = "up" if pong else "down"
    except Exception as e:
        logging.warning(f"Redis health check failed: {e}")
        checks["redis"] = "down"

    healthy = all(value == "up" for value in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "app": settings.app_name,
            "env": settings.app_env,
            "checks": checks,
        },
    )


# Register payment routes
app.include_router(
    payments_router,
    tags=["payments"],
)

# Register webhook routes
app.include_router(
    webhook_router,
    prefix="/payments",
    tags=["webhooks"],
)
