"""Shared API dependencies for authentication and the messaging hub."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from athlinked.core.errors import UnauthenticatedError
from athlinked.core.security import decode_subject
from athlinked.services.hub import MessagingHub

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Get the id of the authenticated user from the JWT bearer token.

    Args:
        credentials: HTTP Bearer token credentials

    Returns:
        The token subject, which is the user id issued by the auth service

    Raises:
        HTTPException: If the token is invalid or expired
    """
    try:
        return decode_subject(credentials.credentials)
    except UnauthenticatedError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=err.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from err


def get_hub(request: Request) -> MessagingHub:
    """Return the messaging hub built at application startup."""
    hub: MessagingHub | None = getattr(request.app.state, "hub", None)
    if hub is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Messaging is not available",
        )
    return hub


CurrentUserIdDep = Annotated[str, Depends(get_current_user_id)]
HubDep = Annotated[MessagingHub, Depends(get_hub)]
