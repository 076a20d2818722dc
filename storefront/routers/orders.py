"""Order API endpoints."""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response, status
from sqlmodel import Session

from ..config import Settings
from ..db import get_session
from ..errors import OrderNotFound, ProductNotFound, ValidationFailed
from ..models import OrderStatus, PaymentStatus, User
from ..schemas import (
    Envelope,
    MonthlyRevenue,
    OrderCancelRequest,
    OrderCollection,
    OrderCreate,
    OrderRead,
    OrderStats,
    OrderStatusUpdate,
    OrderTracking,
    Pagination,
    ShippingUpdate,
    StatusBreakdown,
)
from ..security import get_app_settings, get_current_user, get_optional_user, require_admin
from ..stores import OrderLedger
from ..workflow import OrderWorkflow, build_workflow
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

router = APIRouter(prefix="/orders", tags=["Orders"])

NOT_FOUND_RESPONSE = not_found_response("Order")


def get_workflow(
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> OrderWorkflow:
    return build_workflow(session, settings.stock_policy)


@router.get(
    "",
    response_model=Envelope[OrderCollection],
    summary="List orders",
    description="Admins see every order; other users see their own.",
    operation_id="listOrders",
    responses={
        200: {"headers": {**CACHED_HEADERS, "X-Total-Count": {"schema": {"type": "integer"}}}},
        401: UNAUTHORIZED_RESPONSE,
    },
)
async def list_orders(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(default=None, alias="paymentStatus"),
    sort_by: Literal["createdAt", "total", "status", "orderNumber"] = Query(default="createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="desc", alias="sortOrder"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> Response:
    result = OrderLedger(session).list_orders(
        user_id=None if user.is_admin else user.id,
        status=status_filter,
        payment_status=payment_status,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    collection = OrderCollection(
        orders=[OrderRead.from_model(order) for order in result.items],
        pagination=Pagination.from_page(result),
    )
    return cached_response(envelope(collection), headers={"X-Total-Count": str(result.total)})


@router.get(
    "/stats",
    response_model=Envelope[OrderStats],
    summary="Order statistics",
    operation_id="getOrderStats",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE},
)
async def order_stats(session: Session = Depends(get_session), admin: User = Depends(require_admin)) -> Response:
    ledger = OrderLedger(session)
    stats = ledger.stats()
    body = OrderStats(
        total_orders=stats["total_orders"],
        total_revenue=stats["total_revenue"],
        status_breakdown=[StatusBreakdown(**entry) for entry in stats["status_breakdown"]],
        recent_orders=[OrderRead.from_model(order) for order in stats["recent_orders"]],
        monthly_revenue=[MonthlyRevenue(**entry) for entry in ledger.monthly_revenue()],
    )
    return cached_response(envelope(body))


@router.get(
    "/track/{order_number}",
    response_model=Envelope[OrderTracking],
    summary="Track order",
    description="Public lookup by order number. The projection carries no internal ids.",
    operation_id="trackOrder",
    responses={404: NOT_FOUND_RESPONSE},
)
async def track_order(
    order_number: str = Path(min_length=1, max_length=64),
    session: Session = Depends(get_session),
) -> Response:
    order = OrderLedger(session).find_by_number(order_number)
    if order is None:
        raise OrderNotFound(order_number)
    return cached_response(envelope(OrderTracking.from_model(order)))


@router.get(
    "/{order_id}",
    response_model=Envelope[OrderRead],
    summary="Retrieve order",
    operation_id="getOrder",
    responses={
        200: {"headers": CACHED_HEADERS},
        401: UNAUTHORIZED_RESPONSE,
        403: FORBIDDEN_RESPONSE,
        404: NOT_FOUND_RESPONSE,
    },
)
async def get_order(
    order_id: UUID,
    workflow: OrderWorkflow = Depends(get_workflow),
    user: User = Depends(get_current_user),
) -> Response:
    order = workflow.get_order(order_id, user)
    return cached_response(envelope(OrderRead.from_model(order)))


@router.post(
    "",
    response_model=Envelope[OrderRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description="Guests may order; a bearer token attaches the order to its user.",
    operation_id="createOrder",
    responses={
        201: {"headers": {"Location": {"schema": {"type": "string", "format": "uri"}}}},
        400: BAD_REQUEST_RESPONSE,
    },
)
async def create_order(
    request: Request,
    order_in: OrderCreate,
    workflow: OrderWorkflow = Depends(get_workflow),
    user: Optional[User] = Depends(get_optional_user),
) -> Response:
    try:
        order = workflow.create_order(order_in, user)
    except ProductNotFound as exc:
        raise ValidationFailed(exc.message) from exc

    body = OrderRead.from_model(order)
    headers = {"Location": str(request.url_for("get_order", order_id=order.id))}
    return json_response(
        envelope(body, "Order created successfully"), status_code=status.HTTP_201_CREATED, headers=headers
    )


@router.patch(
    "/{order_id}/status",
    response_model=Envelope[OrderRead],
    summary="Change order status",
    operation_id="updateOrderStatus",
    responses={
        400: BAD_REQUEST_RESPONSE,
        401: UNAUTHORIZED_RESPONSE,
        403: FORBIDDEN_RESPONSE,
        404: NOT_FOUND_RESPONSE,
    },
)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    workflow: OrderWorkflow = Depends(get_workflow),
    admin: User = Depends(require_admin),
) -> Response:
    order = workflow.change_status(order_id, payload.status, admin, payload.note)
    return json_response(envelope(OrderRead.from_model(order), "Order status updated successfully"))


@router.patch(
    "/{order_id}/shipping",
    response_model=Envelope[OrderRead],
    summary="Update shipping information",
    operation_id="updateOrderShipping",
    responses={
        400: BAD_REQUEST_RESPONSE,
        401: UNAUTHORIZED_RESPONSE,
        403: FORBIDDEN_RESPONSE,
        404: NOT_FOUND_RESPONSE,
    },
)
async def update_order_shipping(
    order_id: UUID,
    payload: ShippingUpdate,
    workflow: OrderWorkflow = Depends(get_workflow),
    admin: User = Depends(require_admin),
) -> Response:
    order = workflow.update_shipping(order_id, payload)
    return json_response(envelope(OrderRead.from_model(order), "Shipping information updated successfully"))


@router.post(
    "/{order_id}/cancel",
    response_model=Envelope[OrderRead],
    summary="Cancel order",
    description="Owners and admins may cancel orders that have not shipped. Reserved stock is returned.",
    operation_id="cancelOrder",
    responses={
        400: BAD_REQUEST_RESPONSE,
        401: UNAUTHORIZED_RESPONSE,
        403: FORBIDDEN_RESPONSE,
        404: NOT_FOUND_RESPONSE,
    },
)
async def cancel_order(
    order_id: UUID,
    payload: Optional[OrderCancelRequest] = Body(default=None),
    workflow: OrderWorkflow = Depends(get_workflow),
    user: User = Depends(get_current_user),
) -> Response:
    reason = payload.reason if payload is not None else None
    order = workflow.cancel_order(order_id, user, reason)
    return json_response(envelope(OrderRead.from_model(order), "Order cancelled successfully"))
