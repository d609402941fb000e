"""
Pricing formula - the single canonical price computation.

    raw         = vessel.base_cost_cents + wick.cost_cents + wax.price_per_oz_cents * vessel.size_oz
    with_margin = round_half_up(raw * (1 + vessel.margin_pct / 100))
    price       = with_margin / 100, formatted to exactly two decimals

Arithmetic runs in Decimal so the single rounding step is exact.
No side effects and no catalog access.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from .errors import ValidationError

CENT = Decimal('0.01')
WHOLE = Decimal('1')
HUNDRED = Decimal('100')


def to_decimal(value, field: str, positive: bool = False) -> Decimal:
    """Coerce a cost input, rejecting negative, non-finite and non-numeric values."""
    if value is None or isinstance(value, bool):
        raise ValidationError(field, f"must be a number, got {value!r}")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(field, f"must be a number, got {value!r}")
    if not number.is_finite():
        raise ValidationError(field, "must be a finite number")
    if positive and number <= 0:
        raise ValidationError(field, "must be greater than 0")
    if number < 0:
        raise ValidationError(field, "must not be negative")
    return number


def compute_price_cents(vessel, wax, wick) -> int:
    """
    Price of one (vessel, wax, wick) combination in cents.

    Args:
        vessel: object with size_oz, base_cost_cents, margin_pct
        wax: object with price_per_oz_cents
        wick: object with cost_cents

    Returns:
        Price in whole cents, rounded half-up once after margin.
    """
    size_oz = to_decimal(vessel.size_oz, 'size_oz', positive=True)
    base_cost = to_decimal(vessel.base_cost_cents, 'base_cost_cents')
    margin_pct = to_decimal(vessel.margin_pct, 'margin_pct')
    wax_per_oz = to_decimal(wax.price_per_oz_cents, 'price_per_oz_cents')
    wick_cost = to_decimal(wick.cost_cents, 'cost_cents')

    raw_cents = base_cost + wick_cost + (wax_per_oz * size_oz)
    with_margin = (raw_cents * (1 + margin_pct / HUNDRED)).quantize(WHOLE, rounding=ROUND_HALF_UP)
    return int(with_margin)


def compute_price(vessel, wax, wick) -> str:
    """Price of a combination as a two-decimal dollar string."""
    return format_price(compute_price_cents(vessel, wax, wick))


def format_price(cents: int) -> str:
    """1358 -> "13.58"."""
    return str((Decimal(int(cents)) / HUNDRED).quantize(CENT))


def parse_price_cents(price) -> int:
    """"24.50" -> 2450. Accepts a leading "$" and surrounding whitespace."""
    text = str(price).strip().lstrip('$').strip()
    try:
        dollars = Decimal(text)
    except (InvalidOperation, ValueError):
        raise ValidationError('price', f"not a decimal price: {price!r}")
    if not dollars.is_finite():
        raise ValidationError('price', f"not a decimal price: {price!r}")
    return int((dollars * HUNDRED).quantize(WHOLE, rounding=ROUND_HALF_UP))


def format_change(delta_cents: int) -> str:
    """250 -> "+$2.50", -100 -> "-$1.00", 0 -> "$0.00"."""
    if delta_cents > 0:
        return f"+${format_price(delta_cents)}"
    if delta_cents < 0:
        return f"-${format_price(-delta_cents)}"
    return "$0.00"


def price_change_pct(current_cents: int, new_cents: int) -> Optional[Decimal]:
    """Absolute change as a percentage of the current price (None for a zero price)."""
    if current_cents == 0:
        return None
    return abs(Decimal(new_cents - current_cents)) * HUNDRED / Decimal(current_cents)


def is_large_change(current_cents: int, new_cents: int, threshold_pct: float = 50.0) -> bool:
    """
    True when the change is strictly greater than threshold_pct of the current price.

    Exactly the threshold is not flagged. A zero current price is never flagged.
    """
    if current_cents == 0:
        return False
    threshold = Decimal(str(threshold_pct))
    return abs(Decimal(new_cents - current_cents)) * HUNDRED > threshold * abs(Decimal(current_cents))
