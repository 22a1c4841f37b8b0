from decimal import Decimal, ROUND_HALF_UP, InvalidOperation as DecimalError

from config.constants import SHIPPING_FEE, TAX_RATE
from utils.errors import ValidationError

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("Invalid amount", {"value": value})
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (DecimalError, ValueError):
        raise ValidationError("Invalid amount", {"value": str(value)})


def price_breakdown(price) -> dict:
    """
    Breakdown stored on the order at placement time.
    Stored values are never recomputed, so later fee or rate changes
    leave historical orders untouched.
    """
    unit = to_money(price)
    shipping = to_money(SHIPPING_FEE)
    tax = (unit * TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    total = unit + shipping + tax

    return {
        "price": float(unit),
        "shipping_fee": float(shipping),
        "tax": float(tax),
        "total": float(total),
    }
