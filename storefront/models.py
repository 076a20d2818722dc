"""Database models for the storefront."""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Numeric
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ProductCategory(str, Enum):
    """Closed set of catalog categories."""

    MEN_SHIRTS = "men-shirts"
    MEN_PANTS = "men-pants"
    MEN_JACKETS = "men-jackets"
    MEN_SHOES = "men-shoes"
    MEN_ACCESSORIES = "men-accessories"
    WOMEN_DRESSES = "women-dresses"
    WOMEN_TOPS = "women-tops"
    WOMEN_PANTS = "women-pants"
    WOMEN_SHOES = "women-shoes"
    WOMEN_ACCESSORIES = "women-accessories"
    KIDS_BOYS = "kids-boys"
    KIDS_GIRLS = "kids-girls"
    KIDS_SHOES = "kids-shoes"
    SALE = "sale"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out-of-stock"
    DISCONTINUED = "discontinued"


VARIANT_SIZES = ("XS", "S", "M", "L", "XL", "XXL", "28", "30", "32", "34", "36", "38", "40", "42")


class OrderStatus(str, Enum):
    """Enumeration of the lifecycle states of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "cash-on-delivery"
    CREDIT_CARD = "credit-card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank-transfer"


class ShippingMethod(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"


def _money_column(nullable: bool = False) -> Column:
    return Column(Numeric(precision=12, scale=2), nullable=nullable)


class User(SQLModel, table=True):
    """A person registered in the storefront."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    first_name: str
    last_name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    phone: Optional[str] = None
    role: Role = Field(default=Role.CUSTOMER, index=True)
    status: UserStatus = Field(default=UserStatus.ACTIVE, index=True)
    total_orders: int = Field(default=0, ge=0)
    total_spent: Decimal = Field(sa_column=_money_column(), default=Decimal("0.00"))
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE


class Product(SQLModel, table=True):
    """A catalog entry with its variants, images and reviews."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    description: str
    price: Decimal = Field(sa_column=_money_column(), default=Decimal("0.00"))
    original_price: Optional[Decimal] = Field(sa_column=_money_column(nullable=True), default=None)
    category: ProductCategory = Field(index=True)
    brand: Optional[str] = None
    sku: str = Field(index=True, unique=True)
    total_stock: int = Field(default=0, ge=0)
    status: ProductStatus = Field(default=ProductStatus.ACTIVE, index=True)
    featured: bool = Field(default=False, index=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    rating_average: float = Field(default=0.0, ge=0, le=5)
    rating_count: int = Field(default=0, ge=0)
    sales_count: int = Field(default=0, ge=0)
    view_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    images: List["ProductImage"] = Relationship(
        back_populates="product",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "ProductImage.id"},
    )
    variants: List["Variant"] = Relationship(
        back_populates="product",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Variant.id"},
    )
    reviews: List["Review"] = Relationship(
        back_populates="product",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Review.id"},
    )

    @property
    def primary_image(self) -> Optional[str]:
        for image in self.images:
            if image.is_primary:
                return image.url
        return self.images[0].url if self.images else None

    @property
    def on_sale(self) -> bool:
        return self.original_price is not None and self.original_price > self.price

    @property
    def discount_percentage(self) -> int:
        if not self.on_sale:
            return 0
        ratio = (self.original_price - self.price) / self.original_price * 100
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def find_variant(self, size: Optional[str], color: Optional[str]) -> Optional["Variant"]:
        """Return the first variant matching every non-empty requested field."""

        for variant in self.variants:
            if size and variant.size != size:
                continue
            if color and variant.color != color:
                continue
            return variant
        return None

    def refresh_stock(self) -> None:
        """Recompute total stock and flip between active and out-of-stock."""

        if self.variants:
            self.total_stock = sum(variant.stock for variant in self.variants)
        if self.total_stock == 0 and self.status == ProductStatus.ACTIVE:
            self.status = ProductStatus.OUT_OF_STOCK
        elif self.total_stock > 0 and self.status == ProductStatus.OUT_OF_STOCK:
            self.status = ProductStatus.ACTIVE


class ProductImage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: UUID = Field(foreign_key="product.id", index=True)
    url: str
    alt: str = ""
    is_primary: bool = False

    product: Optional[Product] = Relationship(back_populates="images")


class Variant(SQLModel, table=True):
    """A size/color combination with its own stock and optional price."""

    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: UUID = Field(foreign_key="product.id", index=True)
    size: Optional[str] = None
    color: Optional[str] = None
    stock: int = Field(default=0, ge=0)
    price: Optional[Decimal] = Field(sa_column=_money_column(nullable=True), default=None)

    product: Optional[Product] = Relationship(back_populates="variants")


class Review(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: UUID = Field(foreign_key="product.id", index=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)
    rating: int = Field(ge=1, le=5)
    comment: str = ""
    verified: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    product: Optional[Product] = Relationship(back_populates="reviews")


class Order(SQLModel, table=True):
    """A purchase placed by a registered user or a guest."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    order_number: str = Field(index=True, unique=True)
    user_id: Optional[UUID] = Field(default=None, foreign_key="user.id", index=True)
    customer_info: dict = Field(default_factory=dict, sa_column=Column(JSON))
    shipping_address: dict = Field(default_factory=dict, sa_column=Column(JSON))
    billing_address: dict = Field(default_factory=dict, sa_column=Column(JSON))
    subtotal: Decimal = Field(sa_column=_money_column(), default=Decimal("0.00"))
    shipping_cost: Decimal = Field(sa_column=_money_column(), default=Decimal("0.00"))
    tax: Decimal = Field(sa_column=_money_column(), default=Decimal("0.00"))
    discount: Decimal = Field(sa_column=_money_column(), default=Decimal("0.00"))
    total: Decimal = Field(sa_column=_money_column(), default=Decimal("0.00"))
    status: OrderStatus = Field(default=OrderStatus.PENDING, index=True)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH_ON_DELIVERY)
    payment_details: dict = Field(default_factory=dict, sa_column=Column(JSON))
    shipping: dict = Field(default_factory=dict, sa_column=Column(JSON))
    notes: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    items: List["OrderItem"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "OrderItem.id"},
    )
    status_history: List["StatusHistory"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "StatusHistory.id"},
    )

    @property
    def customer_name(self) -> str:
        return f"{self.customer_info.get('first_name', '')} {self.customer_info.get('last_name', '')}".strip()


class OrderItem(SQLModel, table=True):
    """A line item with the product snapshot captured at order time."""

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: UUID = Field(foreign_key="order.id", index=True)
    product_id: UUID = Field(index=True)
    snapshot_name: str
    snapshot_price: Decimal = Field(sa_column=_money_column())
    snapshot_image: Optional[str] = None
    snapshot_sku: str
    variant_id: Optional[int] = None
    variant_size: Optional[str] = None
    variant_color: Optional[str] = None
    quantity: int = Field(ge=1)
    price: Decimal = Field(sa_column=_money_column())
    total: Decimal = Field(sa_column=_money_column())

    order: Optional[Order] = Relationship(back_populates="items")

    @property
    def has_variant(self) -> bool:
        return bool(self.variant_size or self.variant_color)


class StatusHistory(SQLModel, table=True):
    """Append-only record of an order's status assignments."""

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: UUID = Field(foreign_key="order.id", index=True)
    status: OrderStatus
    timestamp: datetime = Field(default_factory=utcnow)
    note: str = ""
    updated_by: Optional[UUID] = None

    order: Optional[Order] = Relationship(back_populates="status_history")
