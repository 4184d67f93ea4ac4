import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config import settings
from shared.database import SessionLocal, init_db, close_db
from shared.exceptions import LeaseError
from shared.redis_client import RedisClient
from shared.event_bus import event_bus
from services.audit_service.api import routes as audit_routes
from services.lease_service.api import routes
from services.payment_service.api import routes as payment_routes

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan: startup and shutdown."""
    # Startup
    logger.info(f"Starting {settings.service_name}")
    await init_db()

    try:
        await event_bus.initialize()
    except Exception as e:
        logger.warning(f"Event bus initialization failed (non-blocking): {e}")

    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; webhooks will be rejected")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.service_name}")
    await close_db()
    await RedisClient.close()


# Create FastAPI app
app = FastAPI(
    title="Car Lease API",
    description="Car lease lifecycle and payment reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(routes.router)
app.include_router(routes.cars_router)
app.include_router(payment_routes.router)
app.include_router(audit_routes.router)


# Health check endpoints
@app.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": settings.service_name}


@app.get("/ready")
async def readiness_check():
    """Readiness check - database reachable; Redis reported but not required."""
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "service": settings.service_name},
        )

    return {
        "status": "ready",
        "service": settings.service_name,
        "cache": "up" if await RedisClient.is_healthy() else "down",
    }


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Car Lease API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# Error handlers
@app.exception_handler(LeaseError)
async def lease_error_handler(request: Request, exc: LeaseError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.service_port,
    )
