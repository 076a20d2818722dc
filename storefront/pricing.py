"""Order pricing rules."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

CENT = Decimal("0.01")
FREE_SHIPPING_THRESHOLD = Decimal("100")
FLAT_SHIPPING_FEE = Decimal("10.00")
TAX_RATE = Decimal("0.16")


def quantize_price(value: Decimal) -> Decimal:
    """Ensure all decimal values use two decimal places."""

    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return quantize_price(unit_price * quantity)


@dataclass(frozen=True)
class PricingBreakdown:
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


def compute_pricing(line_totals: Iterable[Decimal], discount: Decimal = Decimal("0")) -> PricingBreakdown:
    """Price an order from its line totals.

    Shipping is free only when the subtotal is strictly above the threshold.
    Tax is charged on the subtotal and rounded half-up to the cent.
    """

    subtotal = quantize_price(sum(line_totals, Decimal("0")))
    shipping = Decimal("0.00") if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING_FEE
    tax = quantize_price(subtotal * TAX_RATE)
    discount = quantize_price(discount)
    if discount < 0:
        raise ValueError("Discount cannot be negative")
    gross = subtotal + shipping + tax
    if discount > gross:
        raise ValueError("Discount cannot exceed the order amount")
    return PricingBreakdown(
        subtotal=subtotal,
        shipping=quantize_price(shipping),
        tax=tax,
        discount=discount,
        total=quantize_price(gross - discount),
    )
