# src/athlinked/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .messages import router as messages_router
from .realtime import router as realtime_router

__all__ = [
    "messages_router",
    "realtime_router",
]
