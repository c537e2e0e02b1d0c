"""Fixed-point conversion between decimal amounts and contract minor units."""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation

# Stellar assets (and the USDC SAC) carry 7 decimals
DEFAULT_DECIMALS = 7

DISPLAY_QUANT = Decimal("0.01")


def to_minor_units(amount: str | Decimal, decimals: int = DEFAULT_DECIMALS) -> int:
    """Convert a decimal amount to integer minor units, truncating extra precision.

    >>> to_minor_units("12.34")
    123400000
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    scaled = value * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_minor_units(minor: int, decimals: int = DEFAULT_DECIMALS) -> Decimal:
    """Convert integer minor units back to an exact Decimal."""
    return Decimal(minor) / (Decimal(10) ** decimals)


def format_amount(minor: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Two-decimal display string for a minor-unit amount (123400000 -> "12.34")."""
    return str(from_minor_units(minor, decimals).quantize(DISPLAY_QUANT, rounding=ROUND_HALF_UP))
