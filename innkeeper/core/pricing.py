"""Price computation for units and bookings."""

from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def calculate_total_price(base_price: Decimal, markup_percent: int | Decimal) -> Decimal:
    """Apply the system markup to a base price.

    total = base × (1 + markup / 100), rounded once to two decimal places
    with ROUND_HALF_UP after the multiply.

    Args:
        base_price: Unit base price.
        markup_percent: Configured markup, e.g. 15 for 15%.

    Returns:
        Total price quantized to cents.
    """
    factor = Decimal(1) + Decimal(markup_percent) / Decimal(100)
    return (Decimal(base_price) * factor).quantize(CENTS, rounding=ROUND_HALF_UP)
