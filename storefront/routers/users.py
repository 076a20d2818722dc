"""User API endpoints."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlmodel import Session

from ..db import get_session
from ..errors import ForbiddenError, UserNotFound, ValidationFailed
from ..models import Role, User, UserStatus
from ..schemas import (
    AccountStatusCount,
    Envelope,
    OrderCollection,
    OrderRead,
    Pagination,
    RoleCount,
    UserCollection,
    UserOverview,
    UserRead,
    UserReport,
    UserStatusUpdate,
    UserUpdate,
)
from ..security import get_current_user, require_admin
from ..stores import IdentityStore, OrderLedger
from .common import (
    BAD_REQUEST_RESPONSE,
    CACHED_HEADERS,
    FORBIDDEN_RESPONSE,
    UNAUTHORIZED_RESPONSE,
    cached_response,
    envelope,
    json_response,
    not_found_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

NOT_FOUND_RESPONSE = not_found_response("User")


def _ensure_owner_or_admin(user_id: UUID, caller: User) -> None:
    if not caller.is_admin and caller.id != user_id:
        raise ForbiddenError("Access denied")


@router.get(
    "",
    response_model=Envelope[UserCollection],
    summary="List users",
    description="List users with optional filtering and pagination.",
    operation_id="listUsers",
    responses={
        200: {"headers": {**CACHED_HEADERS, "X-Total-Count": {"schema": {"type": "integer"}}}},
        401: UNAUTHORIZED_RESPONSE,
        403: FORBIDDEN_RESPONSE,
    },
)
async def list_users(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    role: Optional[Role] = Query(default=None),
    status_filter: Optional[UserStatus] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> Response:
    result = IdentityStore(session).list_users(role=role, status=status_filter, search=search, page=page, limit=limit)
    collection = UserCollection(
        users=[UserRead.from_model(user) for user in result.items],
        pagination=Pagination.from_page(result),
    )
    return cached_response(envelope(collection), headers={"X-Total-Count": str(result.total)})


@router.get(
    "/stats",
    response_model=Envelope[UserReport],
    summary="User statistics",
    operation_id="getUserStats",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE},
)
async def user_stats(session: Session = Depends(get_session), admin: User = Depends(require_admin)) -> Response:
    stats = IdentityStore(session).stats()
    body = UserReport(
        overview=UserOverview(**stats["overview"]),
        role_breakdown=[RoleCount(**entry) for entry in stats["role_breakdown"]],
        status_breakdown=[AccountStatusCount(**entry) for entry in stats["status_breakdown"]],
    )
    return cached_response(envelope(body))


@router.get(
    "/{user_id}",
    response_model=Envelope[UserRead],
    summary="Retrieve user",
    operation_id="getUser",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def get_user(
    user_id: UUID,
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
) -> Response:
    _ensure_owner_or_admin(user_id, caller)
    user = IdentityStore(session).find_by_id(user_id)
    if user is None:
        raise UserNotFound(user_id)
    return cached_response(envelope(UserRead.from_model(user)))


@router.put(
    "/{user_id}",
    response_model=Envelope[UserRead],
    summary="Update user",
    description="Owners may edit their profile. Role and status changes are ignored unless the caller is an admin.",
    operation_id="updateUser",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def update_user(
    user_id: UUID,
    payload: UserUpdate,
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
) -> Response:
    _ensure_owner_or_admin(user_id, caller)
    changes = payload.model_dump(exclude_unset=True)
    if not caller.is_admin:
        changes.pop("role", None)
        changes.pop("status", None)
    elif user_id == caller.id and changes.get("status") not in (None, UserStatus.ACTIVE):
        raise ValidationFailed("You cannot deactivate your own account")

    identity = IdentityStore(session)
    user = identity.find_by_id(user_id)
    if user is None:
        raise UserNotFound(user_id)
    for field, value in changes.items():
        if field in ("first_name", "last_name", "role", "status") and value is None:
            continue
        setattr(user, field, value)
    identity.save(user)
    identity.commit()
    logger.info("User %s updated by %s: %s", user.id, caller.id, sorted(changes))
    return json_response(envelope(UserRead.from_model(user), "User updated successfully"))


@router.delete(
    "/{user_id}",
    response_model=Envelope[None],
    summary="Delete user",
    description="Removes the account. Its orders remain in the ledger as guest orders.",
    operation_id="deleteUser",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def delete_user(
    user_id: UUID,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> Response:
    if user_id == admin.id:
        raise ValidationFailed("You cannot delete your own account")

    identity = IdentityStore(session)
    user = identity.find_by_id(user_id)
    if user is None:
        raise UserNotFound(user_id)
    detached = identity.delete(user)
    identity.commit()
    logger.info("User %s deleted by %s; %d orders kept as guest orders", user_id, admin.id, detached)
    return json_response(envelope(None, "User deleted successfully"))


@router.get(
    "/{user_id}/orders",
    response_model=Envelope[OrderCollection],
    summary="List a user's orders",
    operation_id="listUserOrders",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def list_user_orders(
    user_id: UUID,
    session: Session = Depends(get_session),
    caller: User = Depends(get_current_user),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
) -> Response:
    _ensure_owner_or_admin(user_id, caller)
    if IdentityStore(session).find_by_id(user_id) is None:
        raise UserNotFound(user_id)

    result = OrderLedger(session).list_orders(user_id=user_id, page=page, limit=limit)
    collection = OrderCollection(
        orders=[OrderRead.from_model(order) for order in result.items],
        pagination=Pagination.from_page(result),
    )
    return cached_response(envelope(collection), headers={"X-Total-Count": str(result.total)})


@router.patch(
    "/{user_id}/status",
    response_model=Envelope[UserRead],
    summary="Change account status",
    operation_id="updateUserStatus",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def update_user_status(
    user_id: UUID,
    payload: UserStatusUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> Response:
    if user_id == admin.id and payload.status != UserStatus.ACTIVE:
        raise ValidationFailed("You cannot deactivate your own account")

    identity = IdentityStore(session)
    user = identity.find_by_id(user_id)
    if user is None:
        raise UserNotFound(user_id)
    user.status = payload.status
    identity.save(user)
    identity.commit()
    logger.info("User %s set to %s by %s", user.id, user.status.value, admin.id)
    return json_response(envelope(UserRead.from_model(user), "User status updated successfully"))
