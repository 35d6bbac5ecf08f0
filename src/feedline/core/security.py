"""Access token helpers for the authentication provider boundary.

Feedline performs no authentication itself. Tokens issued by the identity
provider carry the stable actor identifier in the ``sub`` claim; this module
only encodes and decodes them.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from feedline.core.errors import UnauthenticatedError
from feedline.core.settings import settings


def create_access_token(actor_id: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a signed JWT carrying ``actor_id`` as its subject."""
    to_encode: dict[str, object] = {"sub": actor_id}
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


def decode_actor_id(token: str) -> str:
    """Return the actor identifier stored in ``token``.

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
    if not isinstance(subject, str) or not subject:
        raise UnauthenticatedError("Could not validate credentials")
    return subject
