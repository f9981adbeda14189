"""Input declarations for fee schedules.

An input is a named, typed value the user supplies when a schedule is
evaluated. Inputs come in six kinds:

- Number: a decimal within a declared range (e.g., claim count)
- Boolean: a yes/no flag (e.g., expedited examination requested)
- List: exactly one symbol out of declared choices (e.g., entity size)
- MultiList: any subset of declared choices (e.g., designated states)
- Date: a calendar date within a declared range (e.g., filing date)
- Amount: a monetary amount tagged with a currency (e.g., prior fee paid)

Inputs are created once by the parser and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum


class InputKind(Enum):
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    LIST = "LIST"
    MULTILIST = "MULTILIST"
    DATE = "DATE"
    AMOUNT = "AMOUNT"


@dataclass(frozen=True)
class ListItem:
    """A selectable choice of a List or MultiList input."""

    symbol: str
    value: str


@dataclass(frozen=True)
class NumberInput:
    """A decimal input bounded by [min_value, max_value].

    Example:
        INPUT claims NUMBER 'Number of claims'
          BETWEEN 1 AND 50
          DEFAULT 10
        ENDINPUT
    """

    name: str
    text: str
    min_value: Decimal
    max_value: Decimal
    default: Decimal
    group: str | None = None

    @property
    def kind(self) -> InputKind:
        return InputKind.NUMBER


@dataclass(frozen=True)
class BooleanInput:
    name: str
    text: str
    default: bool = False
    group: str | None = None

    @property
    def kind(self) -> InputKind:
        return InputKind.BOOLEAN


@dataclass(frozen=True)
class ListInput:
    """A single-choice input. The default must be one of the item symbols."""

    name: str
    text: str
    items: tuple[ListItem, ...]
    default: str
    group: str | None = None

    @property
    def kind(self) -> InputKind:
        return InputKind.LIST

    @property
    def symbols(self) -> tuple[str, ...]:
        return tuple(i.symbol for i in self.items)


@dataclass(frozen=True)
class MultiListInput:
    """A multiple-choice input. The default is a subset of the item symbols."""

    name: str
    text: str
    items: tuple[ListItem, ...]
    default: tuple[str, ...] = ()
    group: str | None = None

    @property
    def kind(self) -> InputKind:
        return InputKind.MULTILIST

    @property
    def symbols(self) -> tuple[str, ...]:
        return tuple(i.symbol for i in self.items)


@dataclass(frozen=True)
class DateInput:
    name: str
    text: str
    min_value: date
    max_value: date
    default: date
    group: str | None = None

    @property
    def kind(self) -> InputKind:
        return InputKind.DATE


@dataclass(frozen=True)
class AmountInput:
    """A monetary amount. Amounts carry a currency code but no range."""

    name: str
    text: str
    currency: str
    default: Decimal = Decimal(0)
    group: str | None = None

    @property
    def kind(self) -> InputKind:
        return InputKind.AMOUNT


# Union type for any input declaration
Input = NumberInput | BooleanInput | ListInput | MultiListInput | DateInput | AmountInput
