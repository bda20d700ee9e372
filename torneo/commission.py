"""Commission arithmetic shared by tournaments and tickets.

Both sides must go through `calculate_commission` so that aggregate totals
and per-ticket amounts reconcile to the cent.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | str) -> Decimal:
    """Normalise an amount to two decimal places (half-up)."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_commission(amount: Decimal | int | str, rate: Decimal | str) -> Decimal:
    """Return round(amount * rate, 2, HALF_UP).

    >>> calculate_commission(Decimal("100.00"), Decimal("0.05"))
    Decimal('5.00')
    """
    return (Decimal(amount) * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)
