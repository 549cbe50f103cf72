"""
Tank Level Telemetry - FastAPI Backend

Main application entry point and configuration.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tanklevel.api.frames import router as frames_router
from tanklevel.api.tanks import ingest_router, router as tanks_router, volume_router
from tanklevel.services.repository import get_repository


# Configure logging
LOG_LEVEL = os.getenv("TANKLEVEL_LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Tank Level Telemetry Backend")
    get_repository()

    yield

    # Shutdown
    logger.info("Shutting down Tank Level Telemetry Backend")


# Create FastAPI app
app = FastAPI(
    title="Tank Level Telemetry",
    description="""
    Backend API for tank level telemetry.

    ## Features
    - Decode hex-encoded sensor frames (ultrasonic, radar, pressure, ...)
    - Convert sensor readings to liquid level with per-device calibration
    - Compute volume and fill percentage for cylindrical, silo, capsule and other tank shapes
    - Recalculate tank volume when its configuration changes

    ## Data Flow
    1. Configure a tank via POST /tanks/{id}, assigning a sensor id
    2. Send payloads via POST /ingest
    3. Read the latest result via GET /tanks/{id}
    4. Get the level/volume curve via GET /tanks/{id}/curve
    """,
    version="0.1.0",
    lifespan=lifespan,
)


# CORS middleware (allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(frames_router)
app.include_router(volume_router)
app.include_router(tanks_router)
app.include_router(ingest_router)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "name": "Tank Level Telemetry",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    repo = get_repository()

    return {
        "status": "healthy",
        "device_count": len(repo.list_devices()),
        "tank_count": len(repo.list_tanks()),
    }
