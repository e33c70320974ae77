"""Satoshi and euro display helpers using fixed integer/Decimal precision."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP


SATS_PER_BSV = 100_000_000
_EUR_QUANT = Decimal("0.01")


def to_sats(value: Decimal | int | str) -> int:
    """Coerce an amount to whole satoshis, rejecting fractions and negatives."""
    dec = Decimal(str(value))
    if dec != dec.to_integral_value():
        raise ValueError(f"Satoshi amounts must be whole numbers: {value}")
    if dec < 0:
        raise ValueError(f"Satoshi amounts cannot be negative: {value}")
    return int(dec)


def sats_to_bsv(value: int) -> Decimal:
    return Decimal(value) / Decimal(SATS_PER_BSV)


def format_sats(value: int) -> str:
    """Format satoshis with thousands separators, e.g. ``50,000 sats``."""
    return f"{value:,} sats"


def to_eur(value: Decimal | float | int | str) -> Decimal:
    """Round a euro amount to cents."""
    return Decimal(str(value)).quantize(_EUR_QUANT, rounding=ROUND_HALF_UP)


def format_eur(value: Decimal | float | int | str) -> str:
    return f"{to_eur(value):.2f} €"
