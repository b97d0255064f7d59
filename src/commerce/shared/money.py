"""Fixed-point money helpers.

Every stored amount is an integer number of minor units (cents), so totals
add up exactly. Decimal values only exist at the edges: API payloads and
gateway requests/responses.
"""

from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")


def to_cents(value) -> int:
    """Convert a decimal amount (``Decimal``, ``str``, ``int`` or ``float``) to cents."""
    if value is None:
        return 0
    amount = Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)
    return int(amount * 100)


def from_cents(cents: int | None) -> Decimal:
    """Convert cents back to a two-place ``Decimal``."""
    return (Decimal(cents or 0) / 100).quantize(_CENT)


def percentage_of(cents: int, percentage: float) -> int:
    """``percentage`` percent of ``cents``, rounded half-up to whole cents."""
    share = Decimal(cents) * Decimal(str(percentage or 0)) / 100
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
