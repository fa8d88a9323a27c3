"""Money and hour helpers. Ledger amounts are integer pence end to end."""

from decimal import ROUND_DOWN, ROUND_HALF_UP, ROUND_UP, Decimal
from typing import Union

Number = Union[int, str, Decimal]

PENNY = Decimal("0.01")
HOURS_QUANTUM = Decimal("0.01")


def round_half_up(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def pounds_to_pence(amount: Number) -> int:
    """Convert a pound amount (e.g. ``"42.50"``) to pence, rounding half-up."""
    return round_half_up(Decimal(str(amount)) * 100)


def pence_to_pounds(pence: int) -> Decimal:
    return (Decimal(pence) / 100).quantize(PENNY)


def format_gbp(pence: int) -> str:
    return f"£{pence_to_pounds(pence)}"


def proportional_pence(total_pence: int, numerator: Decimal, denominator: Decimal) -> int:
    """``total × numerator / denominator`` rounded half-up to the penny."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return round_half_up(Decimal(total_pence) * Decimal(numerator) / Decimal(denominator))


def quantize_hours(hours: Number, *, round_up: bool = False) -> Decimal:
    """
    Fit an hour amount to the two decimal places the voucher ledger stores.

    Truncates by default. ``round_up`` is for draws, so a 20 minute span
    consumes 0.34h rather than 0.33h.
    """
    rounding = ROUND_UP if round_up else ROUND_DOWN
    return Decimal(str(hours)).quantize(HOURS_QUANTUM, rounding=rounding)


def minutes_to_hours(minutes: int) -> Decimal:
    return Decimal(minutes) / Decimal(60)
