"""Error taxonomy for the messaging core and its HTTP mapping.

Every error carries a client-safe ``message``. Details that must not reach the
client (driver errors, SQL) stay on the exception chain and in the server log.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MessagingError(Exception):
    """Base class for failures surfaced to the originating client."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(MessagingError):
    """Raised for missing receivers, empty content and other malformed input."""


class ConversationNotFoundError(InvalidRequestError):
    """Raised when a conversation does not exist or the caller is not in it."""

    status_code = status.HTTP_404_NOT_FOUND


class UnauthenticatedError(MessagingError):
    """Raised when a connection acts before announcing a valid identity."""

    status_code = status.HTTP_401_UNAUTHORIZED


class StoreFailureError(MessagingError):
    """Raised when durable persistence fails; the transaction was rolled back."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class TransportFailureError(MessagingError):
    """Raised when emission to a single connection fails."""


def register_exception_handlers(app: FastAPI) -> None:
    """Map messaging errors raised inside REST handlers to JSON responses."""

    @app.exception_handler(MessagingError)
    async def messaging_error_handler(_: Request, exc: MessagingError) -> JSONResponse:
        if isinstance(exc, StoreFailureError):
            logger.error("Store failure in request: %s", exc.__cause__ or exc)
        else:
            logger.info("Rejected request: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
