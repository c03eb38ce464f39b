"""Minor-unit amounts from the gateway boundary mapped onto the major-unit ledger."""
from __future__ import annotations

from decimal import Decimal

from kindkart.core.errors import InvalidAmountError

_CENT = Decimal("0.01")
_MINOR_PER_MAJOR = 100


def from_minor_units(minor: int) -> Decimal:
    """Convert a positive minor-unit amount (paise) into a two-place major-unit Decimal (rupees).

    Clients and the gateway both speak integer paise, so the conversion is an
    exact division and never rounds.
    """

    if isinstance(minor, bool) or not isinstance(minor, int):
        raise InvalidAmountError("Amounts must be whole paise")
    if minor <= 0:
        raise InvalidAmountError()
    return (Decimal(minor) / _MINOR_PER_MAJOR).quantize(_CENT)


__all__ = ["from_minor_units"]
