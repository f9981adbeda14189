"""Concrete values bound to inputs at evaluation time."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class NumberValue:
    """Bound to NUMBER and AMOUNT inputs."""

    value: Decimal

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class BooleanValue:
    value: bool

    def __str__(self) -> str:
        return "TRUE" if self.value else "FALSE"


@dataclass(frozen=True)
class StringValue:
    """The selected symbol of a LIST input."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StringListValue:
    """The selected symbols of a MULTILIST input.

    Order is irrelevant for evaluation; duplicates are rejected at bind time.
    """

    value: tuple[str, ...]

    def __str__(self) -> str:
        return "{" + ", ".join(self.value) + "}"


@dataclass(frozen=True)
class DateValue:
    value: date

    def __str__(self) -> str:
        return self.value.isoformat()


# Union of all bound value forms
IPFValue = NumberValue | BooleanValue | StringValue | StringListValue | DateValue
