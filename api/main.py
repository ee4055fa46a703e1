"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.middleware.rate_limiting import RateLimitMiddleware
from api.routes import business, public
from scheduling.errors import (
    BookingValidationError,
    EntityNotFoundError,
    TokenError,
    TokenErrorCode,
    TransitionError,
)
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.startup_validator import StartupValidationError, validate_startup_config

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Booking Scheduling API",
    version="1.0.0",
)

# Load settings for CORS configuration
settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

# Add rate limiting middleware FIRST (executes LAST, closest to routes)
app.add_middleware(RateLimitMiddleware)

# Add CORS middleware LAST (executes FIRST, handles preflight OPTIONS before rate limiting)
# In FastAPI/Starlette, last added middleware executes first
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Customer-facing booking pages and token links
app.include_router(public.router)

# Business calendar and schedule configuration
app.include_router(business.router)

TOKEN_ERROR_STATUS: dict[TokenErrorCode, int] = {
    TokenErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    TokenErrorCode.EXPIRED: status.HTTP_410_GONE,
    TokenErrorCode.ALREADY_USED: status.HTTP_409_CONFLICT,
}


@app.on_event("startup")
async def startup_config_validation():
    """
    Validate critical configuration at startup.

    Raises:
        StartupValidationError: If critical configuration is invalid
    """
    logger.info("Running API startup configuration validation...")
    try:
        validate_startup_config()
        logger.info("API startup configuration validation passed")
    except StartupValidationError as e:
        logger.critical(f"API startup blocked due to configuration errors: {e}")
        raise  # FastAPI will fail to start


# Exception handler for validation errors
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Return 400 with validation error details."""
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "details": exc.errors()},
    )


@app.exception_handler(BookingValidationError)
async def booking_validation_exception_handler(
    request: Request, exc: BookingValidationError
) -> JSONResponse:
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(EntityNotFoundError)
async def not_found_exception_handler(request: Request, exc: EntityNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error": "not_found", "message": f"{exc.entity} not found"},
    )


@app.exception_handler(TokenError)
async def token_exception_handler(request: Request, exc: TokenError) -> JSONResponse:
    """Map token failures to distinct statuses so the UI can show the right message."""
    logger.info(f"Token rejected: {exc.code.value}", extra={"request_path": request.url.path})
    return JSONResponse(
        status_code=TOKEN_ERROR_STATUS[exc.code],
        content={"error": exc.code.value, "message": exc.user_message},
    )


@app.exception_handler(TransitionError)
async def transition_exception_handler(request: Request, exc: TransitionError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": exc.code.value, "message": exc.user_message},
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - Redis connectivity (PING command)
    - PostgreSQL connectivity (SELECT 1 query)

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    from sqlalchemy import text

    from database.connection import get_async_session
    from shared.redis_client import get_redis_client

    health_status = {
        "status": "healthy",
        "redis": "unknown",
        "postgres": "unknown",
    }
    status_code = 200

    # Check Redis connectivity
    try:
        redis_client = get_redis_client()
        await redis_client.ping()
        health_status["redis"] = "connected"
    except Exception:
        health_status["redis"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    # Check PostgreSQL connectivity
    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["postgres"] = "connected"
    except Exception:
        health_status["postgres"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Booking Scheduling API - Use /health for health checks"}
