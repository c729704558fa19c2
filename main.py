"""
CloudGreet Backend - FastAPI Server

This is the main entry point for the CloudGreet backend service.
It serves the dashboard API and the Telnyx/Stripe webhooks, and runs the
background scheduler for appointment reminders and missed-call recovery.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from models.schemas import HealthResponse
from routes import (
    appointments_router,
    auth_router,
    billing_router,
    business_router,
    calls_router,
    dashboard_router,
    leads_router,
    notifications_router,
    quotes_router,
    telnyx_router,
)
from services.scheduler import get_job_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce noise from third-party libraries
for noisy in ("httpx", "httpcore", "apscheduler", "stripe", "openai"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events:
    - Start the background scheduler on startup
    - Stop the scheduler on shutdown
    """
    # Startup
    logger.info(f"Starting CloudGreet Backend ({settings.environment})")

    scheduler = get_job_scheduler()
    scheduler.start()

    logger.info("CloudGreet Backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down CloudGreet Backend")
    scheduler.stop()
    logger.info("CloudGreet Backend shut down")


# Create FastAPI app
app = FastAPI(
    title="CloudGreet Backend",
    description="AI phone receptionist for service businesses",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    auth_router,
    business_router,
    appointments_router,
    telnyx_router,
    billing_router,
    leads_router,
    calls_router,
    dashboard_router,
    notifications_router,
    quotes_router,
):
    app.include_router(router, prefix="/api")


# ==================== Endpoints ====================

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status with environment and timestamp
    """
    return HealthResponse(
        status="healthy",
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc)
    )


# ==================== Run Server ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.is_development
    )
