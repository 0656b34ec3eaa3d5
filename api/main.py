"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from redis.exceptions import RedisError

from agent.session import RedisSessionStore, get_session_store
from api.routes import flow
from shared.config import get_settings
from shared.logging_config import configure_logging

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Voice Flow API",
    version="1.0.0",
)

settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[flow.RESPONSE_TYPE_HEADER],
)

app.include_router(flow.router)


@app.on_event("startup")
async def startup_session_store():
    """
    Initialize the session store.

    Raises:
        redis.ConnectionError: If the Redis backend is configured but unreachable
    """
    store = get_session_store()
    logger.info(f"Initializing session store ({type(store).__name__})...")
    store.init()


@app.on_event("shutdown")
async def shutdown_session_store():
    get_session_store().shutdown()
    logger.info("Session store shut down")


# Exception handler for validation errors
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Return 400 with validation error details."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation error",
            "details": exc.errors(include_url=False, include_context=False),
        },
    )


@app.exception_handler(RedisError)
async def redis_exception_handler(request: Request, exc: RedisError) -> JSONResponse:
    """Session store unavailable."""
    logger.error(
        f"Redis error while handling {request.url.path}: {exc}",
        extra={"request_path": request.url.path},
    )
    return JSONResponse(
        status_code=503,
        content={"error": "Session store unavailable"},
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - Redis connectivity (PING command), when the Redis backend is configured

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    store = get_session_store()
    health_status = {
        "status": "healthy",
        "session_store": settings.SESSION_STORE_BACKEND,
    }
    status_code = 200

    if isinstance(store, RedisSessionStore):
        try:
            store.client.ping()
            health_status["redis"] = "connected"
        except RedisError:
            health_status["redis"] = "disconnected"
            health_status["status"] = "degraded"
            status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Voice Flow API - Use /health for health checks"}
