"""FastAPI dependencies for authentication."""

from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from reflect.core.db import get_db_session
from reflect.core.security import verify_token
from reflect.models.user import User

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[Session, Depends(get_db_session)],
) -> User:
    """
    Get current authenticated user from JWT token.

    Raises:
        HTTPException: 401 if token is invalid or user not found
        HTTPException: 400 if user is inactive
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise credentials_exception from None

    user_id = payload.get("sub")
    if user_id is None or payload.get("type") != "access":
        raise credentials_exception

    try:
        user = db.get(User, int(user_id))
    except ValueError:
        raise credentials_exception from None

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    return user
