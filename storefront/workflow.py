"""Order creation, status changes and the inventory side effects they carry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError

from .config import StockPolicy
from .errors import (
    ForbiddenError,
    InsufficientStock,
    OrderNotFound,
    ProductNotFound,
    ProductUnavailable,
    StoreFailure,
    StorefrontError,
    VariantNotFound,
)
from .models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    ProductStatus,
    ShippingMethod,
    StatusHistory,
    User,
    Variant,
)
from .pricing import compute_pricing, line_total, quantize_price
from .schemas import OrderCreate, ShippingUpdate
from .stores import CatalogStore, IdentityStore, OrderLedger
from .transitions import TransitionRule, resolve_transition

logger = logging.getLogger(__name__)


class Actor(Protocol):
    id: UUID

    @property
    def is_admin(self) -> bool: ...


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Return a new order number such as ``ORD-20250101-3F2A9C0B1D``."""

    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:10].upper()}"


@dataclass
class _PricedLine:
    product: Product
    variant: Optional[Variant]
    item: OrderItem


class OrderWorkflow:
    """Turns order requests into persisted orders and keeps stock in step."""

    def __init__(
        self,
        catalog: CatalogStore,
        ledger: OrderLedger,
        identity: IdentityStore,
        policy: StockPolicy = StockPolicy.ATOMIC,
    ):
        self.catalog = catalog
        self.ledger = ledger
        self.identity = identity
        self.policy = StockPolicy(policy)

    # -- creation -------------------------------------------------------

    def create_order(self, request: OrderCreate, user: Optional[User] = None) -> Order:
        """Validate, price and persist an order, then apply its stock decrements.

        Every product and stock check runs before anything is written, so a
        bad line aborts the whole order. What happens after the checks depends
        on the stock policy:

        ``legacy``
            The order is committed first and stock is decremented afterwards,
            one product at a time. A failure while decrementing is logged and
            left in place.
        ``atomic``
            Stock is decremented with conditional updates in the same
            transaction as the order insert; a lost race rolls everything back.
        """

        lines = [self._price_line(item) for item in request.items]
        pricing = compute_pricing(line.item.total for line in lines)

        now = datetime.now(timezone.utc)
        shipping_address = request.shipping_address.model_dump()
        billing = request.billing_address
        if billing is None or billing.same_as_shipping:
            billing_address = {**shipping_address, "same_as_shipping": True}
        else:
            billing_address = billing.model_dump()

        order = Order(
            order_number=generate_order_number(now),
            user_id=user.id if user is not None else None,
            customer_info=request.customer_info.model_dump(),
            shipping_address=shipping_address,
            billing_address=billing_address,
            subtotal=pricing.subtotal,
            shipping_cost=pricing.shipping,
            tax=pricing.tax,
            discount=pricing.discount,
            total=pricing.total,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_method=request.payment_method,
            shipping={"method": ShippingMethod.STANDARD.value},
            notes={"customer": request.notes} if request.notes else {},
            created_at=now,
            updated_at=now,
            items=[line.item for line in lines],
            status_history=[
                StatusHistory(
                    status=OrderStatus.PENDING,
                    timestamp=now,
                    note="Order placed",
                    updated_by=user.id if user is not None else None,
                )
            ],
        )

        if self.policy is StockPolicy.ATOMIC:
            self._commit_atomically(order, lines, user)
        else:
            self._commit_then_adjust(order, lines, user)

        logger.info(
            "Created order %s with %d item(s), total %s (%s)",
            order.order_number,
            len(lines),
            order.total,
            "guest" if user is None else user.id,
        )
        return self._reloaded(order.id)

    def _price_line(self, requested) -> _PricedLine:
        product = self.catalog.find_by_id(requested.product)
        if product is None:
            raise ProductNotFound(requested.product)
        if product.status != ProductStatus.ACTIVE:
            raise ProductUnavailable(product.name)

        variant: Optional[Variant] = None
        selection = requested.variant
        if selection is not None and selection.requested:
            variant = product.find_variant(selection.size, selection.color)
            if variant is None:
                raise VariantNotFound(product.name)
            if variant.stock < requested.quantity:
                raise InsufficientStock(product.name, variant.size, variant.color)
        elif product.total_stock < requested.quantity:
            raise InsufficientStock(product.name)

        unit_price = quantize_price(variant.price if variant is not None and variant.price else product.price)
        item = OrderItem(
            product_id=product.id,
            snapshot_name=product.name,
            snapshot_price=unit_price,
            snapshot_image=product.primary_image,
            snapshot_sku=product.sku,
            variant_id=variant.id if variant is not None else None,
            variant_size=selection.size if selection is not None else None,
            variant_color=selection.color if selection is not None else None,
            quantity=requested.quantity,
            price=unit_price,
            total=line_total(unit_price, requested.quantity),
        )
        return _PricedLine(product=product, variant=variant, item=item)

    def _commit_atomically(self, order: Order, lines: List[_PricedLine], user: Optional[User]) -> None:
        try:
            self.ledger.add(order)
            touched: set[UUID] = set()
            for line in lines:
                quantity = line.item.quantity
                if line.variant is not None:
                    reserved = self.catalog.reserve_variant_stock(line.variant.id, quantity)
                elif not line.product.variants:
                    reserved = self.catalog.reserve_product_stock(line.product.id, quantity)
                else:
                    reserved = True
                if not reserved:
                    variant = line.variant
                    raise InsufficientStock(
                        line.product.name,
                        variant.size if variant is not None else None,
                        variant.color if variant is not None else None,
                    )
                self.catalog.record_sales(line.product.id, quantity)
                touched.add(line.product.id)

            for product_id in touched:
                product = self.catalog.reload(product_id)
                if product is not None:
                    self.catalog.save(product)

            if user is not None:
                self.identity.record_purchase(user.id, order.total)
            self.ledger.commit()
        except StorefrontError:
            self.ledger.rollback()
            raise
        except SQLAlchemyError as exc:
            self.ledger.rollback()
            logger.exception("Failed to persist order %s", order.order_number)
            raise StoreFailure("create order", exc) from exc

    def _commit_then_adjust(self, order: Order, lines: List[_PricedLine], user: Optional[User]) -> None:
        try:
            self.ledger.add(order)
            self.ledger.commit()
        except SQLAlchemyError as exc:
            self.ledger.rollback()
            logger.exception("Failed to persist order %s", order.order_number)
            raise StoreFailure("create order", exc) from exc

        for line in lines:
            item = line.item
            try:
                product = self.catalog.reload(item.product_id)
                if product is None:
                    raise ProductNotFound(item.product_id)
                if item.has_variant:
                    variant = product.find_variant(item.variant_size, item.variant_color)
                    if variant is not None:
                        variant.stock -= item.quantity
                elif not product.variants:
                    product.total_stock -= item.quantity
                product.sales_count += item.quantity
                self.catalog.save(product)
                self.catalog.commit()
            except (StorefrontError, SQLAlchemyError) as exc:
                self.catalog.rollback()
                logger.error(
                    "Inventory not adjusted for order %s, product %s: %s",
                    order.order_number,
                    item.product_id,
                    exc,
                )

        if user is not None:
            try:
                self.identity.record_purchase(user.id, order.total)
                self.identity.commit()
            except SQLAlchemyError as exc:
                self.identity.rollback()
                logger.error("Stats not updated for user %s after order %s: %s", user.id, order.order_number, exc)

    def _reloaded(self, order_id: UUID) -> Order:
        order = self.ledger.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    # -- lifecycle ------------------------------------------------------

    def get_order(self, order_id: UUID, actor: Actor) -> Order:
        order = self.ledger.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        self._ensure_can_access(order, actor)
        return order

    def change_status(
        self,
        order_id: UUID,
        status: OrderStatus,
        actor: Actor,
        note: Optional[str] = None,
    ) -> Order:
        order = self.ledger.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        rule = resolve_transition(order.status, status)
        if rule.admin_only and not actor.is_admin:
            raise ForbiddenError("Admin access required.")
        if not rule.admin_only:
            self._ensure_can_access(order, actor)
        self._apply(order, OrderStatus(status), rule, actor, note or "")
        logger.info("Order %s moved to %s by %s", order.order_number, order.status.value, actor.id)
        return self._reloaded(order.id)

    def cancel_order(self, order_id: UUID, actor: Actor, reason: Optional[str] = None) -> Order:
        order = self.ledger.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        self._ensure_can_access(order, actor)
        rule = resolve_transition(order.status, OrderStatus.CANCELLED)
        self._apply(order, OrderStatus.CANCELLED, rule, actor, reason or "Order cancelled by user")
        logger.info("Order %s cancelled by %s", order.order_number, actor.id)
        return self._reloaded(order.id)

    def update_shipping(self, order_id: UUID, update: ShippingUpdate) -> Order:
        order = self.ledger.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        shipping = dict(order.shipping or {})
        for key, value in update.model_dump(exclude_unset=True).items():
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, ShippingMethod):
                value = value.value
            shipping[key] = value
        order.shipping = shipping
        self._persist(order, "update shipping information")
        return self._reloaded(order.id)

    def _ensure_can_access(self, order: Order, actor: Actor) -> None:
        if actor.is_admin:
            return
        if order.user_id is None or order.user_id != actor.id:
            raise ForbiddenError("Access denied")

    def _apply(self, order: Order, status: OrderStatus, rule: TransitionRule, actor: Actor, note: str) -> None:
        now = datetime.now(timezone.utc)
        try:
            if rule.restock:
                self._restock(order)
            order.status = status
            order.status_history.append(
                StatusHistory(order_id=order.id, status=status, timestamp=now, note=note, updated_by=actor.id)
            )
            if rule.settle_cash_on_delivery:
                shipping = dict(order.shipping or {})
                shipping["actual_delivery"] = now.isoformat()
                order.shipping = shipping
                if order.payment_method == PaymentMethod.CASH_ON_DELIVERY:
                    order.payment_status = PaymentStatus.PAID
                    order.payment_details = {
                        **(order.payment_details or {}),
                        "payment_date": now.isoformat(),
                        "payment_gateway": PaymentMethod.CASH_ON_DELIVERY.value,
                    }
            if rule.refund_payment and order.payment_status == PaymentStatus.PAID:
                order.payment_status = PaymentStatus.REFUNDED
            self.ledger.save(order)
            self.ledger.commit()
        except SQLAlchemyError as exc:
            self.ledger.rollback()
            logger.exception("Failed to change status of order %s", order.order_number)
            raise StoreFailure("update order status", exc) from exc

    def _restock(self, order: Order) -> None:
        """Return the stock taken by an order's line items."""

        self.catalog.flush()
        touched: set[UUID] = set()
        for item in order.items:
            if item.has_variant:
                restored = item.variant_id is not None and self.catalog.restock_variant(item.variant_id, item.quantity)
                if not restored:
                    product = self.catalog.reload(item.product_id)
                    variant = product.find_variant(item.variant_size, item.variant_color) if product else None
                    if variant is None:
                        logger.warning(
                            "Variant %s/%s of product %s is gone; stock for order %s not restored",
                            item.variant_size,
                            item.variant_color,
                            item.product_id,
                            order.order_number,
                        )
                        continue
                    self.catalog.restock_variant(variant.id, item.quantity)
                touched.add(item.product_id)
            else:
                product = self.catalog.find_by_id(item.product_id)
                if product is not None and not product.variants:
                    self.catalog.restock_product(item.product_id, item.quantity)
                    touched.add(item.product_id)

        for product_id in touched:
            product = self.catalog.reload(product_id)
            if product is not None:
                self.catalog.save(product)

    def _persist(self, order: Order, operation: str) -> None:
        try:
            self.ledger.save(order)
            self.ledger.commit()
        except SQLAlchemyError as exc:
            self.ledger.rollback()
            raise StoreFailure(operation, exc) from exc


def build_workflow(session, policy: StockPolicy = StockPolicy.ATOMIC) -> OrderWorkflow:
    """Wire an OrderWorkflow whose stores share one session."""

    return OrderWorkflow(
        catalog=CatalogStore(session),
        ledger=OrderLedger(session),
        identity=IdentityStore(session),
        policy=policy,
    )
