"""
Lampo Backend Application

FastAPI application serving the dashboard page models.
"""

import os
import sys
import traceback
from contextlib import asynccontextmanager

import log_config  # noqa: F401
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "core"))

import api
from api import router as api_router

from lampo.api_client import ApiClient
from lampo.settings import load_settings
from lampo.views import DashboardViews


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan manager for startup/shutdown."""
    # Startup
    logger.info("Lampo starting")

    # Log registered routes
    routes = [
        f"{getattr(route, 'path', '?')} - {getattr(route, 'methods', ['MOUNT'])}"
        for route in app.routes
    ]
    logger.info(f"Registered routes: {routes}")

    # Settings are resolved once and injected; nothing else reads the environment
    settings = load_settings()
    log_config.setup_logging(settings.log_level.upper())

    client = ApiClient.from_settings(settings)
    api.views = DashboardViews(client, settings)
    logger.info(f"📡 Dashboard backed by {settings.api_base_url}")

    yield

    # Shutdown
    logger.info("Lampo shutting down")
    api.views = None
    client.close()


# Create FastAPI application
app = FastAPI(
    title="Lampo API",
    description="Heat-pump fleet dashboard: devices, daily plans, price forecasts and demand response",
    version=api.VERSION,
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions gracefully."""
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    logger.error(f"Unhandled exception: {exc}")
    logger.error(f"Request path: {request.url.path}")
    logger.error(f"Stack trace:\n{tb_str}")

    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "type": type(exc).__name__,
            "message": "Internal server error",
        },
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: Restrict to the dashboard origin once it is deployed
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)

# Mount static files (built frontend)
static_dir = os.path.join(os.path.dirname(__file__), "static")
if os.path.exists(static_dir):
    app.mount("/static", StaticFiles(directory=static_dir), name="static")
    logger.info(f"Mounted static files from {static_dir}")


# For development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
