"""Money arithmetic shared by cart, checkout and invoices."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, Optional


def round_half_up(value) -> int:
    # Python's round() is banker's rounding; totals shown to customers round .5 up
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def as_number(value: Any) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if n == n else 0.0  # NaN


def unit_price(product: Optional[Dict[str, Any]], line: Dict[str, Any]) -> float:
    """Base product price plus the customization charge for customized lines."""
    base = as_number((product or {}).get("price"))
    extra = as_number(line.get("custom_price")) if line.get("is_customized") else 0.0
    return base + extra


def line_total(product: Optional[Dict[str, Any]], line: Dict[str, Any]) -> float:
    return unit_price(product, line) * int(line.get("quantity") or 0)


def subtotal(products: Dict[int, Dict[str, Any]], lines: Iterable[Dict[str, Any]]) -> float:
    return sum(line_total(products.get(line.get("product_id")), line) for line in lines)


def discount_amount(amount: float, percent: float) -> float:
    """Half-up rounded percentage of `amount`, never more than `amount` itself."""
    if not percent or percent <= 0 or amount <= 0:
        return 0
    return min(round_half_up(Decimal(str(amount)) * Decimal(str(percent)) / 100), amount)


def order_total(sub: float, discount: float = 0, shipping: float = 0, tax: float = 0) -> float:
    return sub - discount + shipping + tax


def to_minor_units(amount: float) -> int:
    """Amount for the payment widget (paise for INR)."""
    return round_half_up(amount * 100)
