"""Pydantic schemas shared by the API."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Generic, List, Literal, Optional, TypeVar
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    HttpUrl,
    PlainSerializer,
    StrictInt,
    StrictStr,
    StringConstraints,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .models import (
    VARIANT_SIZES,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    ProductCategory,
    ProductStatus,
    Role,
    ShippingMethod,
    User,
    UserStatus,
)

T = TypeVar("T")

Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=50)]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, min_length=6, max_length=20, pattern=r"^\+?[0-9 ()-]+$")]
Money = Annotated[Decimal, Field(ge=Decimal("0"), max_digits=12, decimal_places=2)]
# amounts leave the API as JSON numbers
Amount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
VariantSize = Literal["XS", "S", "M", "L", "XL", "XXL", "28", "30", "32", "34", "36", "38", "40", "42"]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProblemDetail(BaseModel):
    """RFC 7807 problem details, extended with the legacy error envelope."""

    success: Literal[False] = False
    error: StrictStr = Field(examples=["Order not found"])
    type: StrictStr = Field(default="about:blank", examples=["https://httpstatuses.com/404"])
    title: StrictStr = Field(examples=["Not Found"])
    status: StrictInt = Field(ge=100, le=599, examples=[404])
    detail: StrictStr = Field(examples=["Order not found"])
    instance: StrictStr = Field(examples=["/orders/123"])
    details: Optional[List[StrictStr]] = None


class Envelope(BaseModel, Generic[T]):
    """Success envelope wrapping every payload."""

    success: Literal[True] = True
    message: Optional[StrictStr] = None
    data: Optional[T] = None


class HealthResponse(CamelModel):
    """Application status payload."""

    status: Literal["OK"] = Field(examples=["OK"])
    message: StrictStr
    version: StrictStr = Field(examples=["1.0.0"])
    environment: StrictStr
    timestamp: datetime
    uptime_seconds: float = Field(ge=0)


class Pagination(CamelModel):
    current_page: int = Field(ge=1)
    total_pages: int = Field(ge=0)
    total_count: int = Field(ge=0)
    has_next_page: bool
    has_prev_page: bool
    limit: int = Field(ge=1)

    @classmethod
    def from_page(cls, page) -> "Pagination":
        return cls(
            current_page=page.page,
            total_pages=page.total_pages,
            total_count=page.total,
            has_next_page=page.page < page.total_pages,
            has_prev_page=page.page > 1,
            limit=page.limit,
        )


# -- users ---------------------------------------------------------------


def _strong_password(value: str) -> str:
    if not (any(c.islower() for c in value) and any(c.isupper() for c in value) and any(c.isdigit() for c in value)):
        raise ValueError("Password must contain at least one lowercase letter, one uppercase letter, and one number")
    return value


class RegisterRequest(CamelModel):
    first_name: Name
    last_name: Name
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    phone: Optional[Phone] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _strong_password(value)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserStats(CamelModel):
    total_orders: int = Field(ge=0)
    total_spent: Amount = Field(ge=0)


class UserRead(CamelModel):
    """User representation in responses. Never carries the password hash."""

    id: UUID
    first_name: str
    last_name: str
    full_name: str
    email: str
    phone: Optional[str] = None
    role: Role
    status: UserStatus
    stats: UserStats
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            status=user.status,
            stats=UserStats(total_orders=user.total_orders, total_spent=user.total_spent),
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserCollection(CamelModel):
    users: List[UserRead] = Field(default_factory=list)
    pagination: Pagination


class AuthPayload(CamelModel):
    user: UserRead
    token: str


class UserStatusUpdate(CamelModel):
    status: UserStatus


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=128)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _strong_password(value)


class TokenCheck(CamelModel):
    user: UserRead


class UserUpdate(CamelModel):
    """Profile changes. Role and status are only honoured for admins."""

    first_name: Optional[Name] = None
    last_name: Optional[Name] = None
    phone: Optional[Phone] = None
    role: Optional[Role] = None
    status: Optional[UserStatus] = None


class UserOverview(CamelModel):
    total_users: int = Field(ge=0)
    active_users: int = Field(ge=0)
    admin_users: int = Field(ge=0)
    customer_users: int = Field(ge=0)


class RoleCount(CamelModel):
    role: Role
    count: int = Field(ge=0)


class AccountStatusCount(CamelModel):
    status: UserStatus
    count: int = Field(ge=0)


class UserReport(CamelModel):
    overview: UserOverview
    role_breakdown: List[RoleCount]
    status_breakdown: List[AccountStatusCount]


# -- products ------------------------------------------------------------


class ImageIn(CamelModel):
    url: HttpUrl
    alt: str = ""
    is_primary: bool = False


class ImageRead(CamelModel):
    url: str
    alt: str = ""
    is_primary: bool = False


class VariantIn(CamelModel):
    size: Optional[VariantSize] = None
    color: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=30)]] = None
    stock: int = Field(ge=0)
    price: Optional[Money] = None


class VariantRead(CamelModel):
    id: int
    size: Optional[str] = None
    color: Optional[str] = None
    stock: int
    price: Optional[Amount] = None


class ProductCreate(CamelModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
    description: Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=2000)]
    price: Money
    original_price: Optional[Money] = None
    category: ProductCategory
    brand: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=50)]] = None
    sku: Annotated[str, StringConstraints(strip_whitespace=True, to_upper=True, min_length=3, max_length=20)]
    images: List[ImageIn] = Field(min_length=1)
    variants: List[VariantIn] = Field(min_length=1)
    status: ProductStatus = ProductStatus.ACTIVE
    featured: bool = False
    tags: List[Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, min_length=1, max_length=30)]] = Field(
        default_factory=list, max_length=20
    )


class ProductUpdate(CamelModel):
    """Partial update for products; lists replace the stored ones wholesale."""

    name: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]] = None
    description: Optional[Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=2000)]] = None
    price: Optional[Money] = None
    original_price: Optional[Money] = None
    category: Optional[ProductCategory] = None
    brand: Optional[str] = None
    images: Optional[List[ImageIn]] = Field(default=None, min_length=1)
    variants: Optional[List[VariantIn]] = Field(default=None, min_length=1)
    status: Optional[ProductStatus] = None
    featured: Optional[bool] = None
    tags: Optional[List[str]] = None


class StockLevel(CamelModel):
    size: Optional[str] = None
    color: Optional[str] = None
    stock: int = Field(ge=0)


class StockUpdate(CamelModel):
    variants: List[StockLevel] = Field(min_length=1)


class Ratings(CamelModel):
    average: float = Field(ge=0, le=5)
    count: int = Field(ge=0)


class ReviewCreate(CamelModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class ReviewRead(CamelModel):
    id: int
    user: UUID
    rating: int
    comment: str
    verified: bool
    created_at: datetime


class ProductRead(CamelModel):
    id: UUID
    name: str
    description: str
    price: Amount
    original_price: Optional[Amount] = None
    discount_percentage: int
    on_sale: bool
    category: ProductCategory
    brand: Optional[str] = None
    sku: str
    images: List[ImageRead]
    primary_image: Optional[str] = None
    variants: List[VariantRead]
    total_stock: int
    status: ProductStatus
    featured: bool
    tags: List[str]
    ratings: Ratings
    reviews: List[ReviewRead]
    sales_count: int
    view_count: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, product: Product) -> "ProductRead":
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            price=product.price,
            original_price=product.original_price,
            discount_percentage=product.discount_percentage,
            on_sale=product.on_sale,
            category=product.category,
            brand=product.brand,
            sku=product.sku,
            images=[ImageRead(url=i.url, alt=i.alt, is_primary=i.is_primary) for i in product.images],
            primary_image=product.primary_image,
            variants=[
                VariantRead(id=v.id, size=v.size, color=v.color, stock=v.stock, price=v.price) for v in product.variants
            ],
            total_stock=product.total_stock,
            status=product.status,
            featured=product.featured,
            tags=list(product.tags or []),
            ratings=Ratings(average=product.rating_average, count=product.rating_count),
            reviews=[
                ReviewRead(
                    id=r.id,
                    user=r.user_id,
                    rating=r.rating,
                    comment=r.comment,
                    verified=r.verified,
                    created_at=r.created_at,
                )
                for r in product.reviews
            ],
            sales_count=product.sales_count,
            view_count=product.view_count,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


class CategoryCount(CamelModel):
    category: ProductCategory
    count: int = Field(ge=0)


class ProductCollection(CamelModel):
    products: List[ProductRead] = Field(default_factory=list)
    pagination: Pagination


# -- orders --------------------------------------------------------------


class CustomerInfo(CamelModel):
    first_name: Name
    last_name: Name
    email: EmailStr
    phone: Phone

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class Address(CamelModel):
    street: Text
    city: Text
    state: Text
    zip_code: Text
    country: Text


class BillingAddress(CamelModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    same_as_shipping: bool = True


class VariantSelection(CamelModel):
    size: Optional[str] = None
    color: Optional[str] = None

    @property
    def requested(self) -> bool:
        return bool(self.size or self.color)


class OrderItemRequest(CamelModel):
    product: UUID
    variant: Optional[VariantSelection] = None
    quantity: int = Field(ge=1, le=100)


class OrderCreate(CamelModel):
    """Schema for creating orders."""

    customer_info: CustomerInfo
    shipping_address: Address
    billing_address: Optional[BillingAddress] = None
    items: List[OrderItemRequest] = Field(min_length=1, max_length=50)
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY
    notes: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class OrderStatusUpdate(CamelModel):
    status: OrderStatus
    note: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class OrderCancelRequest(CamelModel):
    reason: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class ShippingUpdate(CamelModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    method: Optional[ShippingMethod] = None


class ProductSnapshot(CamelModel):
    name: str
    price: Amount
    image: Optional[str] = None
    sku: str


class OrderItemRead(CamelModel):
    product: UUID
    product_snapshot: ProductSnapshot
    variant: VariantSelection
    quantity: int = Field(ge=1)
    price: Amount = Field(ge=0)
    total: Amount = Field(ge=0)


class PricingRead(CamelModel):
    subtotal: Amount = Field(ge=0)
    shipping: Amount = Field(ge=0)
    tax: Amount = Field(ge=0)
    discount: Amount = Field(ge=0)
    total: Amount = Field(ge=0)


class PaymentDetails(CamelModel):
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    payment_gateway: Optional[str] = None


class ShippingInfo(CamelModel):
    method: ShippingMethod = ShippingMethod.STANDARD
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None


class OrderNotes(CamelModel):
    customer: Optional[str] = None
    admin: Optional[str] = None


class StatusHistoryRead(CamelModel):
    status: OrderStatus
    timestamp: datetime
    note: str = ""
    updated_by: Optional[UUID] = None


class OrderRead(CamelModel):
    """Order representation."""

    id: UUID
    order_number: str
    user: Optional[UUID] = None
    customer_info: CustomerInfo
    customer_name: str
    shipping_address: Address
    billing_address: BillingAddress
    items: List[OrderItemRead]
    pricing: PricingRead
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    payment_details: PaymentDetails
    shipping: ShippingInfo
    notes: OrderNotes
    status_history: List[StatusHistoryRead]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, order: Order) -> "OrderRead":
        return cls(
            id=order.id,
            order_number=order.order_number,
            user=order.user_id,
            customer_info=CustomerInfo.model_validate(order.customer_info),
            customer_name=order.customer_name,
            shipping_address=Address.model_validate(order.shipping_address),
            billing_address=BillingAddress.model_validate(order.billing_address or {}),
            items=[
                OrderItemRead(
                    product=item.product_id,
                    product_snapshot=ProductSnapshot(
                        name=item.snapshot_name,
                        price=item.snapshot_price,
                        image=item.snapshot_image,
                        sku=item.snapshot_sku,
                    ),
                    variant=VariantSelection(size=item.variant_size, color=item.variant_color),
                    quantity=item.quantity,
                    price=item.price,
                    total=item.total,
                )
                for item in order.items
            ],
            pricing=_pricing(order),
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_details=PaymentDetails.model_validate(order.payment_details or {}),
            shipping=ShippingInfo.model_validate(order.shipping or {}),
            notes=OrderNotes.model_validate(order.notes or {}),
            status_history=[_history_entry(entry) for entry in order.status_history],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class TrackingHistoryEntry(CamelModel):
    status: OrderStatus
    timestamp: datetime
    note: str = ""


class OrderTracking(CamelModel):
    """Public projection of an order; carries no internal ids."""

    order_number: str
    customer_name: str
    status: OrderStatus
    payment_status: PaymentStatus
    shipping: ShippingInfo
    pricing: PricingRead
    status_history: List[TrackingHistoryEntry]
    created_at: datetime

    @classmethod
    def from_model(cls, order: Order) -> "OrderTracking":
        return cls(
            order_number=order.order_number,
            customer_name=order.customer_name,
            status=order.status,
            payment_status=order.payment_status,
            shipping=ShippingInfo.model_validate(order.shipping or {}),
            pricing=_pricing(order),
            status_history=[
                TrackingHistoryEntry(status=entry.status, timestamp=entry.timestamp, note=entry.note)
                for entry in order.status_history
            ],
            created_at=order.created_at,
        )


class OrderCollection(CamelModel):
    orders: List[OrderRead] = Field(default_factory=list)
    pagination: Pagination


class StatusBreakdown(CamelModel):
    status: OrderStatus
    count: int = Field(ge=0)
    total_amount: Amount


class MonthlyRevenue(CamelModel):
    year: int
    month: int = Field(ge=1, le=12)
    revenue: Amount
    order_count: int = Field(ge=0)


class OrderStats(CamelModel):
    total_orders: int = Field(ge=0)
    total_revenue: Amount
    status_breakdown: List[StatusBreakdown]
    recent_orders: List[OrderRead]
    monthly_revenue: List[MonthlyRevenue] = Field(default_factory=list)


def _pricing(order: Order) -> PricingRead:
    return PricingRead(
        subtotal=order.subtotal,
        shipping=order.shipping_cost,
        tax=order.tax,
        discount=order.discount,
        total=order.total,
    )


def _history_entry(entry: Any) -> StatusHistoryRead:
    return StatusHistoryRead(
        status=entry.status,
        timestamp=entry.timestamp,
        note=entry.note or "",
        updated_by=entry.updated_by,
    )
