# src/athlinked/main.py
"""Main entry point for the AthLinked messaging application."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from athlinked.api.v1 import messages_router, realtime_router
from athlinked.core.errors import register_exception_handlers
from athlinked.core.logging import configure_logging
from athlinked.core.settings import settings
from athlinked.db.session import SessionLocal, create_tables
from athlinked.services.hub import MessagingHub

logger = logging.getLogger(__name__)

DESCRIPTION = "Real-time direct messaging for the AthLinked social network"

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description=DESCRIPTION,
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

register_exception_handlers(app)

# Include API routers
app.include_router(messages_router, prefix="/api/v1")
app.include_router(realtime_router)


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    if settings.auto_create_tables:
        create_tables()
    app.state.hub = MessagingHub(
        SessionLocal,
        require_token=settings.announce_requires_token,
        max_length=settings.message_max_length,
    )
    logger.info("%s %s started", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    hub: MessagingHub | None = getattr(app.state, "hub", None)
    if hub:
        await hub.close()
    app.state.hub = None


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": DESCRIPTION,
        "websocket": settings.ws_path,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("athlinked.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
