# backend/services/pricing.py
"""Checkout arithmetic shared by the payment quote and the persisted order.

Everything here is pure: the amount authorized by the gateway and the prices
recorded on the order come out of the same function.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple, Union

from config import settings

Number = Union[int, float, str, Decimal]

CENT = Decimal("0.01")
TAX_RATE = Decimal(str(settings.TAX_RATE))
DEFAULT_SHIPPING_PRICE = Decimal(str(settings.DEFAULT_SHIPPING_PRICE))


def to_money(value: Number) -> Decimal:
    # str() first so binary floats like 0.1 do not leak their representation error
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceBreakdown:
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal

    def to_minor_units(self) -> int:
        """Total as an integer amount of cents, as payment gateways expect."""
        return int((self.total_price * 100).to_integral_value(rounding=ROUND_HALF_UP))

    def as_floats(self) -> dict:
        return {
            "items_price": float(self.items_price),
            "tax_price": float(self.tax_price),
            "shipping_price": float(self.shipping_price),
            "total_price": float(self.total_price),
        }


def items_total(lines: Iterable[Tuple[Number, int]]) -> Decimal:
    """Sum of unit price * quantity over (unit price, quantity) pairs."""
    total = Decimal("0")
    for price, quantity in lines:
        total += to_money(price) * int(quantity)
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_prices(
    lines: Iterable[Tuple[Number, int]],
    shipping_price: Optional[Number] = None,
    tax_rate: Decimal = TAX_RATE,
    default_shipping: Decimal = DEFAULT_SHIPPING_PRICE,
) -> PriceBreakdown:
    items_price = items_total(lines)
    tax_price = (items_price * tax_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    shipping = to_money(default_shipping if shipping_price is None else shipping_price)
    return PriceBreakdown(
        items_price=items_price,
        tax_price=tax_price,
        shipping_price=shipping,
        total_price=items_price + tax_price + shipping,
    )


def totals_match(items_price: Number, tax_price: Number, shipping_price: Number, total_price: Number) -> bool:
    """True when total = items + tax + shipping within one cent."""
    expected = to_money(items_price) + to_money(tax_price) + to_money(shipping_price)
    return abs(expected - to_money(total_price)) <= CENT
