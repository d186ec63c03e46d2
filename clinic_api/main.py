"""
FastAPI Application Entry Point

This module initializes the FastAPI application and integrates:
- Bookings API
- Database connections
- Error envelope handlers
- Lifecycle events
"""

import logging
import sys
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinic_api.api import bookings_router, register_exception_handlers
from clinic_api.config import settings
from clinic_api.db.session import check_database_connection, close_database_connection
from clinic_api.logging_context import RequestIdFilter, set_request_id

APP_NAME = "Clinic Booking Engine"
APP_VERSION = "0.1.0"

# Configure logging
_handler = logging.StreamHandler(sys.stdout)
_handler.addFilter(RequestIdFilter())
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
    handlers=[_handler],
)
logger = logging.getLogger(__name__)

# Log startup information
logger.info("=" * 60)
logger.info(APP_NAME)
logger.info("=" * 60)
logger.info(f"Python version: {sys.version}")
logger.info(f"Debug mode: {settings.debug}")
logger.info(f"Log level: {settings.log_level}")
logger.info(f"Database URL: {settings.database_url_str.split('@')[0]}@***")
logger.info(f"Clinic timezone: {settings.clinic_timezone}")
logger.info("=" * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events:
    - Verifies database connectivity
    - Closes connections on shutdown
    """
    # Startup
    logger.info("Starting application...")

    db_healthy = await check_database_connection()
    if db_healthy:
        logger.info("Database connection verified")
    else:
        logger.error("Database connection failed!")
        logger.warning("Application will start but database operations will fail")

    logger.info("Application startup complete")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("=" * 60)
    logger.info("Shutting down application...")

    logger.info("Closing database connections...")
    await close_database_connection()

    logger.info("Application shutdown complete")
    logger.info("=" * 60)


# Initialize FastAPI application
app = FastAPI(
    title=APP_NAME,
    description=(
        "Appointment scheduling for clinics: availability of professionals, "
        "conflict-free booking and the booking lifecycle."
    ),
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every log line of a request with its X-Request-Id."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


register_exception_handlers(app)


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "message": f"{APP_NAME} API",
        "version": APP_VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "docs": "/docs" if settings.debug else "disabled in production",
            "bookings": "/api/v1/bookings",
            "available_slots": "/api/v1/bookings/available-slots",
        }
    }


@app.get("/health")
async def health_check():
    """
    Application health check endpoint.

    Checks:
    - API responsiveness
    - Database connectivity

    Returns:
        JSONResponse with health status
    """
    db_healthy = await check_database_connection()

    health_status = {
        "status": "healthy" if db_healthy else "degraded",
        "api": "operational",
        "database": "connected" if db_healthy else "disconnected",
        "version": APP_VERSION,
    }

    status_code = 200 if db_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content=health_status
    )


@app.get("/info")
async def app_info():
    """
    Application information endpoint.

    Returns configuration and status information.
    """
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "environment": "development" if settings.debug else "production",
        "features": {
            "async_operations": True,
            "database": "PostgreSQL",
            "multi_tenant": True,
        },
        "scheduling": {
            "clinic_timezone": settings.clinic_timezone,
            "slot_stride_minutes": settings.slot_stride_minutes,
            "default_slot_duration_minutes": settings.default_slot_duration_minutes,
        },
        "capabilities": [
            "Availability lookup",
            "Conflict-free booking",
            "Booking confirmation",
            "Booking cancellation",
            "Rescheduling",
        ]
    }


# Include bookings router
app.include_router(bookings_router)

logger.info("FastAPI application initialized")
logger.info("Bookings router mounted at: /api/v1/bookings")

# If running with uvicorn directly (not through import)
if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 60)
    logger.info("Starting uvicorn server...")
    logger.info(f"Host: {settings.app_host}")
    logger.info(f"Port: {settings.app_port}")
    logger.info("=" * 60)

    uvicorn.run(
        "clinic_api.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
