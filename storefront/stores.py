"""Store handles over a database session.

The order workflow receives these explicitly instead of reaching for a
global session, so each store can be swapped or shared per request.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, func, update
from sqlmodel import Session, select

from .errors import InsufficientStock
from .models import (
    Order,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductCategory,
    ProductStatus,
    Review,
    Role,
    User,
    UserStatus,
    Variant,
)


@dataclass(frozen=True)
class Page:
    """One page of a paginated query."""

    items: Sequence[Any]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


class _SessionStore:
    def __init__(self, session: Session):
        self.session = session

    def flush(self) -> None:
        self.session.flush()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def _paginate(self, statement, count_statement, page: int, limit: int) -> Page:
        items = self.session.exec(statement.offset((page - 1) * limit).limit(limit)).all()
        total = int(self.session.exec(count_statement).one())
        return Page(items=items, total=total, page=page, limit=limit)


class CatalogStore(_SessionStore):
    """Products, their variants and reviews."""

    SORT_FIELDS = {
        "createdAt": Product.created_at,
        "price": Product.price,
        "name": Product.name,
        "rating": Product.rating_average,
        "salesCount": Product.sales_count,
    }

    def find_by_id(self, product_id: UUID) -> Optional[Product]:
        return self.session.get(Product, product_id)

    def reload(self, product_id: UUID) -> Optional[Product]:
        """Fetch a product and its variants bypassing anything cached in the session."""

        product = self.session.get(Product, product_id)
        if product is not None:
            self.session.refresh(product)
            for variant in product.variants:
                self.session.refresh(variant)
        return product

    def find_by_sku(self, sku: str) -> Optional[Product]:
        statement = select(Product).where(func.upper(Product.sku) == sku.strip().upper())
        return self.session.exec(statement).first()

    def save(self, product: Product) -> Product:
        """Persist a product after recomputing its stock-derived fields."""

        for variant in product.variants:
            if variant.stock < 0:
                raise InsufficientStock(product.name, variant.size, variant.color)
        if product.total_stock < 0:
            raise InsufficientStock(product.name)
        product.refresh_stock()
        product.updated_at = datetime.now(timezone.utc)
        self.session.add(product)
        self.session.flush()
        return product

    def delete(self, product: Product) -> None:
        self.session.delete(product)
        self.session.flush()

    def reserve_variant_stock(self, variant_id: int, quantity: int) -> bool:
        """Decrement a variant's stock only if enough remains."""

        statement = (
            update(Variant)
            .where(and_(Variant.id == variant_id, Variant.stock >= quantity))
            .values(stock=Variant.stock - quantity)
        )
        result = self.session.connection().execute(statement)
        return result.rowcount == 1

    def reserve_product_stock(self, product_id: UUID, quantity: int) -> bool:
        """Decrement stock of a product that has no variants, only if enough remains."""

        statement = (
            update(Product)
            .where(and_(Product.id == product_id, Product.total_stock >= quantity))
            .values(total_stock=Product.total_stock - quantity)
        )
        result = self.session.connection().execute(statement)
        return result.rowcount == 1

    def restock_variant(self, variant_id: int, quantity: int) -> bool:
        statement = update(Variant).where(Variant.id == variant_id).values(stock=Variant.stock + quantity)
        return self.session.connection().execute(statement).rowcount == 1

    def restock_product(self, product_id: UUID, quantity: int) -> bool:
        statement = update(Product).where(Product.id == product_id).values(total_stock=Product.total_stock + quantity)
        return self.session.connection().execute(statement).rowcount == 1

    def record_sales(self, product_id: UUID, quantity: int) -> None:
        statement = update(Product).where(Product.id == product_id).values(sales_count=Product.sales_count + quantity)
        self.session.connection().execute(statement)

    def record_view(self, product_id: UUID) -> None:
        statement = update(Product).where(Product.id == product_id).values(view_count=Product.view_count + 1)
        self.session.connection().execute(statement)

    def add_review(self, product: Product, review: Review) -> Review:
        product.reviews.append(review)
        self.session.add(product)
        self.session.flush()
        return review

    def list_products(
        self,
        *,
        category: Optional[ProductCategory] = None,
        search: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        featured: bool = False,
        on_sale: bool = False,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 12,
    ) -> Page:
        filters = [Product.status == ProductStatus.ACTIVE]
        if category is not None:
            filters.append(Product.category == category)
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(func.lower(Product.name).like(pattern) | func.lower(Product.description).like(pattern))
        if min_price is not None:
            filters.append(Product.price >= min_price)
        if max_price is not None:
            filters.append(Product.price <= max_price)
        if featured:
            filters.append(Product.featured == True)  # noqa: E712
        if on_sale:
            filters.append(and_(Product.original_price.is_not(None), Product.original_price > Product.price))

        column = self.SORT_FIELDS.get(sort_by, Product.created_at)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        statement = select(Product).where(*filters).order_by(ordering, Product.id)
        count_statement = select(func.count()).select_from(Product).where(*filters)
        return self._paginate(statement, count_statement, page, limit)

    def featured(self, limit: int = 8) -> List[Product]:
        statement = (
            select(Product)
            .where(Product.featured == True, Product.status == ProductStatus.ACTIVE)  # noqa: E712
            .order_by(Product.created_at.desc())
            .limit(limit)
        )
        return list(self.session.exec(statement).all())

    def category_counts(self) -> List[Tuple[ProductCategory, int]]:
        statement = (
            select(Product.category, func.count())
            .where(Product.status == ProductStatus.ACTIVE)
            .group_by(Product.category)
            .order_by(Product.category)
        )
        return [(category, int(count)) for category, count in self.session.exec(statement).all()]

    def related(self, product: Product, limit: int = 4) -> List[Product]:
        statement = (
            select(Product)
            .where(
                Product.category == product.category,
                Product.id != product.id,
                Product.status == ProductStatus.ACTIVE,
            )
            .limit(limit)
        )
        return list(self.session.exec(statement).all())


class IdentityStore(_SessionStore):
    """Registered users."""

    def find_by_id(self, user_id: UUID) -> Optional[User]:
        return self.session.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        statement = select(User).where(func.lower(User.email) == email.strip().lower())
        return self.session.exec(statement).first()

    def save(self, user: User) -> User:
        user.email = user.email.strip().lower()
        user.updated_at = datetime.now(timezone.utc)
        self.session.add(user)
        self.session.flush()
        return user

    def record_purchase(self, user_id: UUID, amount: Decimal) -> None:
        """Add one order and its total to the user's running stats."""

        statement = (
            update(User)
            .where(User.id == user_id)
            .values(total_orders=User.total_orders + 1, total_spent=User.total_spent + amount)
        )
        self.session.connection().execute(statement)

    def delete(self, user: User) -> int:
        """Remove a user. Their orders stay in the ledger as guest orders.

        Returns the number of orders detached from the account.
        """

        detached = self.session.connection().execute(
            update(Order).where(Order.user_id == user.id).values(user_id=None)
        ).rowcount
        self.session.delete(user)
        self.session.flush()
        return detached

    def stats(self) -> Dict[str, Any]:
        rows = self.session.exec(select(User.role, User.status, func.count()).group_by(User.role, User.status)).all()
        by_role: Dict[Role, int] = {}
        by_status: Dict[UserStatus, int] = {}
        for role, status, count in rows:
            by_role[Role(role)] = by_role.get(Role(role), 0) + int(count)
            by_status[UserStatus(status)] = by_status.get(UserStatus(status), 0) + int(count)
        return {
            "overview": {
                "total_users": sum(by_role.values()),
                "active_users": by_status.get(UserStatus.ACTIVE, 0),
                "admin_users": by_role.get(Role.ADMIN, 0),
                "customer_users": by_role.get(Role.CUSTOMER, 0),
            },
            "role_breakdown": [{"role": role, "count": count} for role, count in sorted(by_role.items())],
            "status_breakdown": [{"status": status, "count": count} for status, count in sorted(by_status.items())],
        }

    def list_users(
        self,
        *,
        role: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        filters = []
        if role:
            filters.append(User.role == role)
        if status:
            filters.append(User.status == status)
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(
                func.lower(User.first_name).like(pattern)
                | func.lower(User.last_name).like(pattern)
                | func.lower(User.email).like(pattern)
            )
        statement = select(User).where(*filters).order_by(User.created_at.desc(), User.id)
        count_statement = select(func.count()).select_from(User).where(*filters)
        return self._paginate(statement, count_statement, page, limit)


class OrderLedger(_SessionStore):
    """Orders with their line items and status history. Orders are never deleted."""

    SORT_FIELDS = {
        "createdAt": Order.created_at,
        "total": Order.total,
        "status": Order.status,
        "orderNumber": Order.order_number,
    }

    def add(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def save(self, order: Order) -> Order:
        order.updated_at = datetime.now(timezone.utc)
        self.session.add(order)
        self.session.flush()
        return order

    def find_by_id(self, order_id: UUID) -> Optional[Order]:
        return self.session.get(Order, order_id)

    def find_by_number(self, order_number: str) -> Optional[Order]:
        statement = select(Order).where(Order.order_number == order_number.strip().upper())
        return self.session.exec(statement).first()

    def list_orders(
        self,
        *,
        user_id: Optional[UUID] = None,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        filters = []
        if user_id is not None:
            filters.append(Order.user_id == user_id)
        if status is not None:
            filters.append(Order.status == status)
        if payment_status is not None:
            filters.append(Order.payment_status == payment_status)

        column = self.SORT_FIELDS.get(sort_by, Order.created_at)
        ordering = column.asc() if sort_order == "asc" else column.desc()
        statement = select(Order).where(*filters).order_by(ordering, Order.id)
        count_statement = select(func.count()).select_from(Order).where(*filters)
        return self._paginate(statement, count_statement, page, limit)

    def stats(self, recent: int = 5) -> Dict[str, Any]:
        breakdown = self.session.exec(
            select(Order.status, func.count(), func.coalesce(func.sum(Order.total), 0)).group_by(Order.status)
        ).all()
        total_orders = int(self.session.exec(select(func.count()).select_from(Order)).one())
        revenue = self.session.exec(
            select(func.coalesce(func.sum(Order.total), 0)).where(Order.payment_status == PaymentStatus.PAID)
        ).one()
        recent_orders = self.session.exec(select(Order).order_by(Order.created_at.desc()).limit(recent)).all()
        return {
            "total_orders": total_orders,
            "total_revenue": Decimal(str(revenue)),
            "status_breakdown": [
                {"status": OrderStatus(status), "count": int(count), "total_amount": Decimal(str(amount))}
                for status, count, amount in breakdown
            ],
            "recent_orders": list(recent_orders),
        }

    def monthly_revenue(self, months: int = 6, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Paid revenue per calendar month over the trailing window, oldest month first."""

        since = months_before(now or datetime.now(timezone.utc), months)
        rows = self.session.exec(
            select(Order.created_at, Order.total).where(
                Order.payment_status == PaymentStatus.PAID, Order.created_at >= since
            )
        ).all()
        buckets: Dict[Tuple[int, int], Tuple[Decimal, int]] = {}
        for created_at, total in rows:
            revenue, count = buckets.get((created_at.year, created_at.month), (Decimal("0"), 0))
            buckets[(created_at.year, created_at.month)] = (revenue + Decimal(str(total)), count + 1)
        return [
            {"year": year, "month": month, "revenue": revenue, "order_count": count}
            for (year, month), (revenue, count) in sorted(buckets.items())
        ]


def months_before(moment: datetime, months: int) -> datetime:
    """The same day and time ``months`` calendar months earlier, clamped to the month's end."""

    index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(index, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)
