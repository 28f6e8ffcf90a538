"""Fixed-point money helpers.

All monetary arithmetic in the paper engine happens on integer *minor units*
(cents for two decimal places).  Conversion to and from display decimals
happens only at the boundary (API responses, stream frames).

Rounding is half away from zero, which is what ``ROUND_HALF_UP`` means for
:class:`decimal.Decimal`::

    to_minor("10.005")  -> 1001
    to_minor("-10.005") -> -1001
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Number = Union[Decimal, int, float, str]

DEFAULT_DECIMAL_PLACES = 2


def _as_decimal(amount: Number) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() first so floats convert at their repr, not their binary expansion
    try:
        return Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"not a decimal amount: {amount!r}") from exc


def round_minor(value: Number) -> int:
    """Round a (possibly fractional) minor-unit amount to an integer."""
    return int(_as_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor(amount: Number, decimal_places: int = DEFAULT_DECIMAL_PLACES) -> int:
    """Convert a decimal amount to integer minor units."""
    return round_minor(_as_decimal(amount).scaleb(decimal_places))


def from_minor(minor: int, decimal_places: int = DEFAULT_DECIMAL_PLACES) -> str:
    """Render integer minor units as a fixed decimal string."""
    exp = Decimal(1).scaleb(-decimal_places)
    return str(Decimal(int(minor)).scaleb(-decimal_places).quantize(exp))
