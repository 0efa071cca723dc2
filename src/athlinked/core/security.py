"""JWT helpers shared by the REST dependencies and identity announcement."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from athlinked.core.errors import UnauthenticatedError
from athlinked.core.settings import settings


def create_access_token(subject: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a signed access token for ``subject``.

    Production tokens are issued by the auth service; this mirrors its format
    for tooling and tests.
    """
    to_encode: dict[str, object] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_subject(token: str) -> str:
    """Return the user id carried in ``token``.

    Raises:
        UnauthenticatedError: If the token is invalid, expired or has no subject.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise UnauthenticatedError("Could not validate credentials") from err

    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise UnauthenticatedError("Could not validate credentials")
    return subject
