"""Custom exceptions for the storefront."""

from __future__ import annotations

from typing import Any, Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(StorefrontError):
    """Raised when a referenced record does not exist."""


class ProductNotFound(NotFoundError):
    """Raised when a product id doesn't resolve."""

    def __init__(self, product_id: Any):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFound(NotFoundError):
    def __init__(self, order_ref: Any = None):
        self.order_ref = order_ref
        super().__init__("Order not found")


class UserNotFound(NotFoundError):
    def __init__(self, user_id: Any = None):
        self.user_id = user_id
        super().__init__("User not found")


class ValidationFailed(StorefrontError):
    """Raised when a request is malformed."""

    def __init__(self, message: str = "Validation failed", details: Optional[list[str]] = None):
        self.details = details or []
        super().__init__(message)


class UnavailableError(StorefrontError):
    """Raised when a product can't be sold."""


class ProductUnavailable(UnavailableError):
    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Product is not available: {product_name}")


class StockConflict(StorefrontError):
    """Raised when requested inventory can't be satisfied."""


class VariantNotFound(StockConflict):
    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Variant not found for product: {product_name}")


class InsufficientStock(StockConflict):
    def __init__(self, product_name: str, size: Optional[str] = None, color: Optional[str] = None):
        self.product_name = product_name
        self.size = size
        self.color = color
        label = " ".join(part for part in (size, color) if part)
        msg = f"Insufficient stock for {product_name}"
        if label:
            msg = f"{msg} ({label})"
        super().__init__(msg)


class AuthenticationError(StorefrontError):
    """Raised when credentials are missing or invalid."""


class ForbiddenError(StorefrontError):
    """Raised on ownership or role violations."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class InvalidTransition(StorefrontError):
    """Raised when an order can't move to the requested status."""

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Cannot change order status from {current} to {requested}")


class DuplicateReview(StorefrontError):
    def __init__(self) -> None:
        super().__init__("You have already reviewed this product")


class DuplicateEmail(StorefrontError):
    def __init__(self, email: str):
        self.email = email
        super().__init__("User with this email already exists")


class DuplicateSku(StorefrontError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__("Product with this SKU already exists")


class StoreFailure(StorefrontError):
    """Raised when the persistence layer fails unexpectedly."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        msg = f"Failed to {operation}"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)
