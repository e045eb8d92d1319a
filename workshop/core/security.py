"""Bearer token validation.

Tokens are issued by the external identity provider; this module only
verifies them and extracts the stable user id from the ``sub`` claim.
"""

import logging
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from workshop.core.config import Settings, get_settings
from workshop.core.errors import AuthenticationError

logger = logging.getLogger(__name__)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> UUID:
    """Validate a bearer token and return the user id it identifies.

    Raises AuthenticationError when the token is malformed, has a bad
    signature, is expired, targets another audience or lacks a usable
    ``sub`` claim.
    """
    settings = settings or get_settings()
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except JWTError as e:
        raise AuthenticationError(f"token rejected: {e}") from e

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("token has no subject")
    try:
        return UUID(str(subject))
    except ValueError as e:
        raise AuthenticationError("token subject is not a user id") from e
