"""
BETSYNC - Main FastAPI Application

- CORS and GZip middleware
- Request tracing and metrics
- Typed error envelopes
- Scheduler lifecycle
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Callable

import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.dependencies import build_orchestrator, close_odds_provider
from app.api.routes import api_router, health_router
from app.core.cache import get_cache_manager
from app.core.config import get_settings
from app.core.database import close_db, init_db
from app.core.exceptions import BetSyncError
from app.services.monitoring import get_monitoring_service
from app.services.notifications import get_notification_service
from app.services.scheduling import get_scheduler_service

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"{settings.app_name} {settings.app_version}")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug Mode: {settings.debug}")
    logger.info("Starting up...")

    try:
        await init_db()
        logger.info("✓ Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    # The cache is reconnected lazily; reads fall back to the store meanwhile
    cache_manager = get_cache_manager()
    try:
        await cache_manager.initialize()
        logger.info("✓ Redis cache initialized")
    except Exception as e:
        logger.error(f"Redis unavailable at startup, continuing degraded: {e}")

    scheduler_service = get_scheduler_service()
    await scheduler_service.initialize(build_orchestrator())
    await scheduler_service.start()
    logger.info("✓ Scheduler service started")

    logger.info(f"API available at: http://{settings.HOST}:{settings.port}{settings.API_PREFIX}")

    yield

    logger.info("Shutting down...")

    await scheduler_service.stop()
    logger.info("✓ Scheduler stopped")

    await get_notification_service().drain()
    await close_odds_provider()

    await cache_manager.close()
    logger.info("✓ Cache closed")

    await close_db()
    logger.info("✓ Database closed")

    logger.info("Shutdown complete")


# ============================================================================
# Create FastAPI Application
# ============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Odds synchronization, caching and bet settlement",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)


# ============================================================================
# Middleware
# ============================================================================

class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request tracking and timing."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()
        monitoring = get_monitoring_service()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            monitoring.record_http_request(request.method, request.url.path, 500, duration)
            monitoring.record_error("unhandled_exception", "api")
            logger.error(f"Unhandled error in request {request_id}: {e}")
            raise

        duration = time.perf_counter() - start_time
        monitoring.record_http_request(request.method, request.url.path, response.status_code, duration)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.4f}s"
        return response


# Add middleware (order matters - first added is outermost)
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Response-Time"],
)

app.add_middleware(RequestTrackingMiddleware)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(BetSyncError)
async def betsync_exception_handler(request: Request, exc: BetSyncError):
    """Typed service errors carry their own status and structured details."""
    headers = None
    retry_after = exc.details.get("retry_after")
    if retry_after:
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests are rejected with 400 before any I/O."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "validation_error",
            "message": "Invalid request",
            "detail": errors,
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    request_id = getattr(request.state, "request_id", None)
    logger.error(f"Unhandled exception [{request_id}]: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred" if not settings.debug else str(exc),
            "request_id": request_id
        }
    )


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(api_router, prefix=settings.API_PREFIX)
app.include_router(health_router, prefix="/health", tags=["Health"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "operational",
        "docs": "/docs" if settings.debug else None,
        "health": "/health"
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    monitoring = get_monitoring_service()
    return Response(
        content=monitoring.get_prometheus_metrics(),
        media_type=monitoring.get_prometheus_content_type()
    )


# ============================================================================
# Run Application
# ============================================================================

def run():
    """Run the FastAPI application."""
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.port,
        reload=settings.debug,
        workers=settings.WORKERS if not settings.debug else 1,
        log_level="info" if not settings.debug else "debug",
        access_log=True,
    )


if __name__ == "__main__":
    run()
