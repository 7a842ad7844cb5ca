"""
Shutter - FastAPI Server
Version: 0.1.0
"""

import logging
import os
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from capture_provider import ScreenCaptureProvider
from capture_sink import RecentCapturesSink
from shutter_service import ShutterService
from routes import set_deps
from routes import health, shutter

# Configuration (loaded from environment)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SHUTTER_POLL_INTERVAL = float(os.getenv("SHUTTER_POLL_INTERVAL", "0.5"))
SHUTTER_TICK_SECONDS = float(os.getenv("SHUTTER_TICK_SECONDS", "1.0"))
SHUTTER_DEFAULT_SENSITIVITY = float(os.getenv("SHUTTER_DEFAULT_SENSITIVITY", "0.05"))
SHUTTER_RECENT_CAPTURES = int(os.getenv("SHUTTER_RECENT_CAPTURES", "100"))

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='[%(asctime)s] %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Shutter API",
    version="0.1.0",
    description="Timed, interval, change-detection and programmable screen capture"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins (localhost development)
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log and return detailed validation errors"""
    logger.error(f"[VALIDATION ERROR] {request.method} {request.url}: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "detail": exc.errors(),
        }
    )


app.include_router(health.router)
app.include_router(shutter.router)

# Configured on startup
shutter_service: Optional[ShutterService] = None


@app.on_event("startup")
async def startup_event():
    """Wire up the shutter service"""
    global shutter_service

    logger.info("[Server] Starting Shutter v0.1.0")
    logger.info(f"[Server] Poll interval: {SHUTTER_POLL_INTERVAL}s, tick: {SHUTTER_TICK_SECONDS}s")

    capture_sink = RecentCapturesSink(max_buffer=SHUTTER_RECENT_CAPTURES)
    shutter_service = ShutterService(
        ScreenCaptureProvider(),
        capture_sink=capture_sink,
        poll_interval=SHUTTER_POLL_INTERVAL,
        tick_seconds=SHUTTER_TICK_SECONDS,
        sensitivity=SHUTTER_DEFAULT_SENSITIVITY,
    )
    set_deps(shutter_service=shutter_service, capture_sink=capture_sink)
    logger.info("[Server] ✅ Shutter service initialized")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("[Server] Shutting down Shutter...")

    if shutter_service:
        await shutter_service.shutdown()

    logger.info("[Server] Shutdown complete")


if __name__ == "__main__":
    # Default to port 3000, can be overridden by environment variable
    port = int(os.getenv("PORT", 3000))

    logger.info(f"Server: http://localhost:{port}")
    logger.info(f"API: http://localhost:{port}/api")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info"
    )
