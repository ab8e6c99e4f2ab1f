"""
Bag/kilogram conversion.

Stock is persisted in bags at full precision; kilograms are what users
enter and see. Rounding only ever happens in the display helpers.
"""
import math
from typing import Union

from stockledger.core.exceptions import DataValidationError

Number = Union[int, float]

# 1 bag = 30 kg, used in both directions
BAG_KG = 30


def _check_non_negative(value: Number, label: str) -> float:
    if value is None:
        raise DataValidationError(f"{label} is required")
    value = float(value)
    if value < 0:
        raise DataValidationError(f"{label} cannot be negative: {value}")
    return value


def kg_to_bags(kg: Number) -> float:
    """Convert kilograms to (fractional) bags."""
    return _check_non_negative(kg, "Quantity in kg") / BAG_KG


def bags_to_kg(bags: Number) -> float:
    """Convert bags to kilograms without rounding."""
    return _check_non_negative(bags, "Quantity in bags") * BAG_KG


def display_kg(bags: Number) -> int:
    """Whole kilograms for display, halves rounded up."""
    return int(math.floor(bags_to_kg(bags) + 0.5))


def display_bags(bags: Number) -> str:
    return f"{float(bags):.2f}"
