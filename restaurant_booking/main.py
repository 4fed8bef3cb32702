"""
FastAPI Application Entry Point

Restaurant Booking API - table reservations without double-booking.
Notifications go through an in-process dispatcher (development) or Celery
(staging/production).

Endpoints (all under /api/v1):
    - /auth: signup and login
    - /tables: table inventory and availability
    - /reservations: book, list and cancel
    - /admin/reservations: status management
    - /menu, /categories: the menu
    - /notifications: the caller's notifications
    - /users: user management (admin)
    - /health: system health check
"""

import asyncio
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from restaurant_booking.core.config import get_settings, setup_logging
from restaurant_booking.core.exceptions import ReservationError
from restaurant_booking.database import engine, get_db, init_db
from restaurant_booking.routers import auth, menu, notifications, reservations, tables, users
from restaurant_booking.schemas import ErrorResponse, HealthResponse
from restaurant_booking.services.notifications import get_notification_dispatcher

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    dispatcher = get_notification_dispatcher()
    logger.info(f"Notification Dispatcher: {dispatcher.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield

    logger.info("Shutting down...")
    # Let in-flight notifications finish before the pool goes away
    await dispatcher.drain()
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Restaurant table booking with concurrency-safe reservations.",
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)"
    )
    return response


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def _error_response(status_code: int, message: str, errors=None) -> JSONResponse:
    body = ErrorResponse(message=message, errors=errors).model_dump(mode="json")
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return _error_response(exc.status_code, exc.message, exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return _error_response(400, "Validation error", errors)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")
    return _error_response(
        500,
        "Internal Server Error",
        str(exc) if settings.debug else "An unexpected error occurred",
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": f"{API_PREFIX}/health",
    }


api = APIRouter(prefix=API_PREFIX)


@api.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Verify the store and the notification pipeline are reachable."""
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db_status = f"unhealthy: {e}"
        logger.error(f"Database health check failed: {e}")

    dispatcher = get_notification_dispatcher()
    notification_status = "healthy" if await dispatcher.health_check() else "unhealthy"

    overall = "operational" if db_status == notification_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        notification_service=notification_status,
        environment=settings.env_mode.value,
        timestamp=datetime.now(timezone.utc),
    )


api.include_router(auth.router)
api.include_router(tables.router)
api.include_router(reservations.router)
api.include_router(reservations.admin_router)
api.include_router(menu.menu_router)
api.include_router(menu.category_router)
api.include_router(notifications.router)
api.include_router(users.router)

app.include_router(api)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "restaurant_booking.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
