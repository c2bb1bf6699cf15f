"""
Unit-carrying numeric values. The unit documents intent in builder code and
is dropped when the template is emitted.
"""
from dataclasses import dataclass
from typing import Union

Number = Union[int, float]


@dataclass(frozen=True)
class Quantity:
    value: Number
    unit: str

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"


def seconds(value: Number) -> Quantity:
    return Quantity(value, "s")


def days(value: Number) -> Quantity:
    return Quantity(value, "d")


def as_quantity(value: Union[Number, Quantity], unit: str) -> Quantity:
    """Accept either a bare number or a Quantity in the expected unit."""
    if isinstance(value, Quantity):
        if value.unit != unit:
            raise ValueError(f"Expected a value in '{unit}', got '{value.unit}'")
        return value
    return Quantity(value, unit)
