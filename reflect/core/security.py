"""Bearer token helpers.

Tokens are issued by the account service; this service only needs to decode
them to learn which user a journaling request belongs to.
"""

from typing import Any

import jwt

from reflect.core.settings import get_settings


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If token is expired
        jwt.InvalidTokenError: If token is invalid
    """
    settings = get_settings()
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
