"""Security utilities for the API."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlmodel import Session

from .config import Settings
from .db import get_session
from .models import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False, description="JWT issued by /auth/login or /auth/register.")


def get_app_settings(request: Request) -> Settings:
    """Provide the settings the running application was built with."""

    return request.app.state.settings


def create_access_token(user_id: UUID, settings: Settings) -> str:
    """Create a signed JWT access token."""

    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": 'Bearer realm="api"'},
    )


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def decode_access_token(token: str, settings: Settings) -> UUID:
    """Return the user id carried by a token."""

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise _unauthorized("Invalid token.") from exc

    subject = payload.get("sub")
    if subject is None:
        raise _unauthorized("Invalid token.")
    try:
        return UUID(subject)
    except ValueError as exc:
        raise _unauthorized("Invalid token.") from exc


def _resolve_user(token: str, session: Session, settings: Settings) -> User:
    user = session.get(User, decode_access_token(token, settings))
    if user is None:
        raise _unauthorized("Token is valid but user not found.")
    if not user.is_active:
        raise _unauthorized("User account is not active.")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> User:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Access denied. No token provided.")
    return _resolve_user(credentials.credentials, session, settings)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> Optional[User]:
    """Resolve the caller when a usable token is present; anything else is a guest."""

    if credentials is None or not credentials.credentials:
        return None
    try:
        return _resolve_user(credentials.credentials, session, settings)
    except HTTPException:
        logger.debug("Ignoring unusable token on optional-auth route")
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Dependency for admin-only endpoints."""

    if not user.is_admin:
        raise _forbidden("Admin access required.")
    return user
