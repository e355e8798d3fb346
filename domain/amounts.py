from __future__ import annotations

from decimal import Decimal, InvalidOperation

from .models import LOVELACE_PER_ADA


def parse_ada(text: str) -> int:
    """
    Convert a user-entered ADA amount ("2", "0.5", "1.25") to lovelace.

    Raises `ValueError` for anything that is not a positive amount with at
    most six decimal places.
    """

    try:
        value = Decimal(text.strip())
    except (InvalidOperation, AttributeError) as exc:
        raise ValueError(f"Not an amount: {text!r}") from exc

    if not value.is_finite() or value <= 0:
        raise ValueError("Amount must be greater than zero.")

    lovelace = value * LOVELACE_PER_ADA
    if lovelace != lovelace.to_integral_value():
        raise ValueError("Amounts support at most 6 decimal places.")
    return int(lovelace)


def format_ada(lovelace: int) -> str:
    value = Decimal(lovelace) / LOVELACE_PER_ADA
    if value == value.quantize(Decimal("0.01")):
        return f"{value:.2f} ADA"
    return f"{value.normalize():f} ADA"
