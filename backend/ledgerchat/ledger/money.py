"""Fixed-point money helpers.

All ledger arithmetic happens on ``Decimal`` values with exactly two
fraction digits. Floats coming from JSON are converted through their
shortest ``repr`` so ``0.1`` becomes ``Decimal("0.10")`` rather than the
binary expansion.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ledgerchat.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Bound on every amount and stored balance; sums stay within 28 digits.
MAX_BALANCE = Decimal("999999999999999.99")


def to_money(value: Any) -> Decimal:
    """Convert an int, float, str or Decimal into a two-decimal ``Decimal``.

    Raises ValidationError for booleans, non-numeric strings, NaN/infinity,
    values above ``MAX_BALANCE`` and values with more than two fraction
    digits. Money is never rounded silently.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    if abs(amount) > MAX_BALANCE:
        raise ValidationError(f"Amount out of range: {value!r}")

    quantized = amount.quantize(CENT)
    if quantized != amount:
        raise ValidationError("Amounts may have at most 2 decimal places")
    return quantized


def require_positive(value: Any) -> Decimal:
    """``to_money`` plus the amount > 0 rule shared by every money movement."""
    amount = to_money(value)
    if amount <= ZERO:
        raise ValidationError("Amount must be positive")
    return amount


def check_balance(balance: Decimal) -> Decimal:
    """Reject a balance outside +/- ``MAX_BALANCE`` before it is written."""
    if abs(balance) > MAX_BALANCE:
        raise ValidationError("Balance would exceed the maximum supported amount")
    return balance


def from_db(text: str | None) -> Decimal:
    """Read a TEXT money column."""
    if text is None:
        return ZERO
    return Decimal(text).quantize(CENT)


def to_db(amount: Decimal) -> str:
    """Format a money value for a TEXT column."""
    return str(amount.quantize(CENT))


def format_usd(amount: Decimal) -> str:
    """Human-readable dollars, e.g. ``$1,250.00`` or ``-$12.50``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
