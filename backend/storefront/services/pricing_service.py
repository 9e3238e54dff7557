# Overview: Pure order pricing: subtotal, single percentage discount, net total (integer cents).

"""
Pricing Engine

All arithmetic is done on integer cents. The only division is the
percentage discount, rounded half-up to the cent, so

    total_cents == subtotal_cents - discount_cents

holds exactly and total_cents is within half a cent of
subtotal * (1 - percentage / 100).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import InvalidOrderInput


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    price_cents: int
    quantity: int


@dataclass(frozen=True)
class OrderTotals:
    subtotal_cents: int
    discount_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


def _strict_int(value, field: str) -> int:
    # bool is an int subclass; a True quantity is a client bug, not 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidOrderInput(f"{field} must be an integer", details={"field": field})
    return value


def discount_cents_for(subtotal_cents: int, percentage: int) -> int:
    """Nearest-cent (half-up) share of subtotal for a whole-number percentage."""
    percentage = _strict_int(percentage, "percentage")
    if percentage < 1 or percentage > 100:
        raise InvalidOrderInput("percentage must be between 1 and 100", details={"field": "percentage"})
    return (subtotal_cents * percentage + 50) // 100


def compute_totals(lines: Iterable[PricedLine], discount_percentage: int | None = None) -> OrderTotals:
    """
    subtotal = sum(price * quantity); with a discount,
    discount = subtotal * percentage / 100 and total = subtotal - discount.

    Raises InvalidOrderInput when any price or quantity is not a positive
    integer.
    """
    subtotal = 0
    for line in lines:
        price = _strict_int(line.price_cents, "price_cents")
        quantity = _strict_int(line.quantity, "quantity")
        if price <= 0:
            raise InvalidOrderInput(
                f"price_cents must be positive (product {line.product_id})",
                details={"field": "price_cents", "product_id": line.product_id},
            )
        if quantity <= 0:
            raise InvalidOrderInput(
                f"quantity must be positive (product {line.product_id})",
                details={"field": "quantity", "product_id": line.product_id},
            )
        subtotal += price * quantity

    if discount_percentage is None:
        return OrderTotals(subtotal_cents=subtotal, discount_cents=0, total_cents=subtotal)

    discount = discount_cents_for(subtotal, discount_percentage)
    return OrderTotals(subtotal_cents=subtotal, discount_cents=discount, total_cents=subtotal - discount)
