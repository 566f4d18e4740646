"""Parsing of Kubernetes resource quantity strings ("500m", "16Gi", "2")."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

_BINARY_SUFFIXES = {
    "Ki": Decimal(2) ** 10,
    "Mi": Decimal(2) ** 20,
    "Gi": Decimal(2) ** 30,
    "Ti": Decimal(2) ** 40,
    "Pi": Decimal(2) ** 50,
    "Ei": Decimal(2) ** 60,
}

_DECIMAL_SUFFIXES = {
    "n": Decimal(10) ** -9,
    "u": Decimal(10) ** -6,
    "m": Decimal(10) ** -3,
    "": Decimal(1),
    "k": Decimal(10) ** 3,
    "M": Decimal(10) ** 6,
    "G": Decimal(10) ** 9,
    "T": Decimal(10) ** 12,
    "P": Decimal(10) ** 15,
    "E": Decimal(10) ** 18,
}


def parse_quantity(quantity: str | int | float | None) -> Decimal:
    """Convert a quantity to a Decimal in base units (cores or bytes).

    Raises:
        ValueError: if *quantity* is not a valid Kubernetes quantity.
    """
    if quantity is None or quantity == "":
        return Decimal(0)
    if isinstance(quantity, (int, float)):
        return Decimal(str(quantity))

    text = quantity.strip()
    if text[-2:] in _BINARY_SUFFIXES:
        number, multiplier = text[:-2], _BINARY_SUFFIXES[text[-2:]]
    elif text[-1:] in _DECIMAL_SUFFIXES and not text[-1:].isdigit():
        number, multiplier = text[:-1], _DECIMAL_SUFFIXES[text[-1:]]
    else:
        number, multiplier = text, Decimal(1)

    try:
        return Decimal(number) * multiplier
    except InvalidOperation as exc:
        raise ValueError(f"Invalid quantity: {quantity!r}") from exc
