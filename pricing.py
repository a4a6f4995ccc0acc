"""
Order pricing.

  tax       : 18% of the items price (GST)
  shipping  : free when the items price is above 500, otherwise a flat 50

All amounts are rounded half-up to 2 decimals.
"""
from typing import Iterable

from pydantic import BaseModel

from catalog import round_half_up

TAX_RATE = 0.18
FREE_SHIPPING_THRESHOLD = 500
SHIPPING_FEE = 50


class Pricing(BaseModel):
    items_price: float
    tax_price: float
    shipping_price: float
    total_price: float

    def as_dict(self) -> dict:
        return self.model_dump()


def items_subtotal(items: Iterable) -> float:
    return round_half_up(sum(item.price * item.qty for item in items), 2)


def calculate_pricing(
    items_price: float,
    tax_rate: float = TAX_RATE,
    free_shipping_threshold: float = FREE_SHIPPING_THRESHOLD,
    shipping_fee: float = SHIPPING_FEE,
) -> Pricing:
    items_price = round_half_up(items_price, 2)
    tax_price = round_half_up(items_price * tax_rate, 2)
    shipping_price = 0.0 if items_price > free_shipping_threshold else float(shipping_fee)
    total_price = round_half_up(items_price + tax_price + shipping_price, 2)
    return Pricing(
        items_price=items_price,
        tax_price=tax_price,
        shipping_price=shipping_price,
        total_price=total_price,
    )
