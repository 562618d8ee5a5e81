"""
SaGe Query Console - Main Application Entry Point

FastAPI application exposing query session control over HTTP and live
results/statistics over WebSocket.
"""

from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
import logging

from sage_console.config import settings
from sage_console.connectors import http_transport
from sage_console.core.execution_controller import (
    close_default_controller,
    get_default_controller,
)

# Configure logging
# Use uvicorn's colored "LEVEL:" format for ALL loggers.
from uvicorn.logging import DefaultFormatter

console_handler = logging.StreamHandler()
console_handler.setFormatter(DefaultFormatter(fmt="%(levelprefix)s %(asctime)s - %(message)s", use_colors=True))

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    handlers=[console_handler],
)

# httpx logs every request at INFO; a running query issues one per page.
logging.getLogger("httpx").setLevel(logging.WARNING)


class EndpointFilter(logging.Filter):
    """Filter out high-frequency endpoints from access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if "/api/session/results" in msg:
            return False
        return True


logging.getLogger("uvicorn.access").addFilter(EndpointFilter())

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager - handles startup and shutdown events.
    """
    # Startup
    logger.info("🚀 SaGe query console starting up...")
    logger.info(f"🌐 Default endpoint: {settings.DEFAULT_ENDPOINT}")
    logger.info(
        f"🔧 Environment: {'Development' if settings.APP_DEBUG else 'Production'}"
    )
    http_transport.get_default_transport().initialize()

    yield

    # Shutdown
    logger.info("🛑 SaGe query console shutting down...")
    try:
        close_default_controller()
    except Exception as e:
        logger.warning("Session shutdown encountered an error: %s", e)

    try:
        await http_transport.close_default_transport()
    except Exception as e:
        logger.error(f"Error closing HTTP transport: {e}")


# Initialize FastAPI application
app = FastAPI(
    title="SaGe Query Console",
    description="Run, pause, resume and stop SaGe SPARQL queries with live statistics",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Configure CORS for local development
if settings.APP_DEBUG:
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"🔓 CORS enabled for origins: {settings.CORS_ORIGINS}")


# ============================================================================
# Health Check & Info Endpoints
# ============================================================================


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        dict: Service health status and version information
    """
    transport = http_transport.get_default_transport()
    controller = get_default_controller()
    return {
        "status": "healthy",
        "service": "sage-query-console",
        "version": "0.1.0",
        "environment": "development" if settings.APP_DEBUG else "production",
        "checks": {
            "http_transport": {
                "status": "healthy" if transport.initialized else "not_initialized",
                "pending_calls": transport.pending_calls,
            },
            "session": {"state": controller.state.value},
        },
    }


@app.get("/api/info")
async def api_info():
    """
    API information endpoint.

    Returns:
        dict: Application configuration and capabilities
    """
    return {
        "name": "SaGe Query Console",
        "version": "0.1.0",
        "description": "Query execution controller for SaGe SPARQL endpoints",
        "default_endpoint": settings.DEFAULT_ENDPOINT,
        "features": {
            "pause_resume": True,
            "result_bucket_size": settings.RESULT_BUCKET_SIZE,
            "websocket_support": True,
        },
        "endpoints": {
            "api_docs": "/api/docs",
            "health": "/health",
            "session": "/api/session",
            "results": "/api/session/results",
            "websocket": "/ws/session",
        },
    }


# ============================================================================
# API Routes
# ============================================================================

from sage_console.api.routes import session as session_routes  # noqa: E402

app.include_router(session_routes.router, prefix="/api/session", tags=["session"])


# ============================================================================
# WebSocket endpoint
# ============================================================================

from sage_console.websocket import stream_session  # noqa: E402


@app.websocket("/ws/session")
async def websocket_session(websocket: WebSocket):
    """
    WebSocket endpoint streaming the live session snapshot and new result rows.
    """
    await websocket.accept()
    logger.info("📡 WebSocket connected")

    try:
        await stream_session(websocket, get_default_controller())
    except WebSocketDisconnect:
        logger.info("📡 WebSocket disconnected")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        try:
            await websocket.close()
        except Exception:
            pass


if __name__ == "__main__":
    import uvicorn

    # log_config=None prevents uvicorn from overriding our logging setup.
    uvicorn.run(
        "sage_console.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=None,
    )
