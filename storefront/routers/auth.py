"""Authentication endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ..config import Settings
from ..db import get_session
from ..errors import DuplicateEmail
from ..models import User
from ..passwords import hash_password, verify_password
from ..schemas import AuthPayload, ChangePasswordRequest, Envelope, LoginRequest, RegisterRequest, TokenCheck, UserRead
from ..security import create_access_token, get_app_settings, get_current_user
from ..stores import IdentityStore
from .common import BAD_REQUEST_RESPONSE, UNAUTHORIZED_RESPONSE, cached_response, envelope, json_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _invalid_credentials(detail: str = "Invalid email or password") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": 'Bearer realm="api"'},
    )


@router.post(
    "/register",
    response_model=Envelope[AuthPayload],
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    operation_id="register",
    responses={400: BAD_REQUEST_RESPONSE},
)
async def register(
    request: Request,
    payload: RegisterRequest,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    identity = IdentityStore(session)
    if identity.find_by_email(payload.email) is not None:
        raise DuplicateEmail(payload.email)

    user = User(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email,
        password_hash=hash_password(payload.password, rounds=settings.bcrypt_rounds),
        phone=payload.phone,
    )
    try:
        identity.save(user)
        identity.commit()
    except IntegrityError as exc:
        identity.rollback()
        raise DuplicateEmail(payload.email) from exc

    logger.info("Registered user %s", user.id)
    body = AuthPayload(user=UserRead.from_model(user), token=create_access_token(user.id, settings))
    headers = {"Location": str(request.url_for("me"))}
    return json_response(
        envelope(body, "User registered successfully"), status_code=status.HTTP_201_CREATED, headers=headers
    )


@router.post(
    "/login",
    response_model=Envelope[AuthPayload],
    summary="Log in",
    operation_id="login",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE},
)
async def login(
    payload: LoginRequest,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    identity = IdentityStore(session)
    user = identity.find_by_email(payload.email)
    if user is None:
        logger.warning("Failed login for unknown email")
        raise _invalid_credentials()
    if not user.is_active:
        logger.warning("Login refused for %s user %s", user.status.value, user.id)
        raise _invalid_credentials("Account is not active")
    if not verify_password(payload.password, user.password_hash):
        logger.warning("Failed login for user %s", user.id)
        raise _invalid_credentials()

    user.last_login = datetime.now(timezone.utc)
    identity.save(user)
    identity.commit()

    body = AuthPayload(user=UserRead.from_model(user), token=create_access_token(user.id, settings))
    return json_response(envelope(body, "Login successful"))


@router.get(
    "/me",
    response_model=Envelope[UserRead],
    summary="Current user",
    operation_id="me",
    responses={401: UNAUTHORIZED_RESPONSE},
)
async def me(user: User = Depends(get_current_user)) -> Response:
    return cached_response(envelope(UserRead.from_model(user)))


@router.post(
    "/logout",
    response_model=Envelope[None],
    summary="Log out",
    operation_id="logout",
    responses={401: UNAUTHORIZED_RESPONSE},
)
async def logout(user: User = Depends(get_current_user)) -> Response:
    """Tokens are stateless; the client discards its copy."""

    return json_response(envelope(None, "Logged out successfully"))


@router.post(
    "/change-password",
    response_model=Envelope[None],
    summary="Change password",
    operation_id="changePassword",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE},
)
async def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    if not verify_password(payload.current_password, user.password_hash):
        logger.warning("Password change refused for user %s", user.id)
        raise _invalid_credentials("Current password is incorrect")

    identity = IdentityStore(session)
    user.password_hash = hash_password(payload.new_password, rounds=settings.bcrypt_rounds)
    identity.save(user)
    identity.commit()
    logger.info("Password changed for user %s", user.id)
    return json_response(envelope(None, "Password changed successfully"))


@router.post(
    "/verify-token",
    response_model=Envelope[TokenCheck],
    summary="Verify token",
    operation_id="verifyToken",
    responses={401: UNAUTHORIZED_RESPONSE},
)
async def verify_token(user: User = Depends(get_current_user)) -> Response:
    return json_response(envelope(TokenCheck(user=UserRead.from_model(user)), "Token is valid"))
