"""Builder helpers for constructing fee schedules in Python.

These build the same immutable AST the parser produces, so a script built
here can be checked, evaluated, composed and verified like a parsed one.
Numbers may be given as int, str or Decimal; floats are rejected.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import TypeAlias

from .expressions import Binary, BoolLit, Call, DateLit, Expr, NumberLit, Ref, SymbolLit, Unary
from .inputs import (
    AmountInput,
    BooleanInput,
    DateInput,
    ListInput,
    ListItem,
    MultiListInput,
    NumberInput,
)
from .script import Case, Fee, LetVar

Num: TypeAlias = int | str | Decimal


def D(x: Num) -> Decimal:
    if isinstance(x, float):
        raise TypeError("Use str or Decimal for non-integer amounts, not float")
    return Decimal(x)


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


def num(x: Num) -> NumberLit:
    return NumberLit(D(x))


def ref(name: str) -> Ref:
    return Ref(name)


def sym(symbol: str) -> SymbolLit:
    return SymbolLit(symbol)


def day(iso: str) -> DateLit:
    return DateLit(date.fromisoformat(iso))


TRUE = BoolLit(True)
FALSE = BoolLit(False)


def binop(op: str, lhs: Expr, rhs: Expr) -> Binary:
    return Binary(op, lhs, rhs)


def add(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("+", lhs, rhs)


def sub(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("-", lhs, rhs)


def mul(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("*", lhs, rhs)


def div(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("/", lhs, rhs)


def eq(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("=", lhs, rhs)


def gt(lhs: Expr, rhs: Expr) -> Binary:
    return Binary(">", lhs, rhs)


def lt(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("<", lhs, rhs)


def and_(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("AND", lhs, rhs)


def or_(lhs: Expr, rhs: Expr) -> Binary:
    return Binary("OR", lhs, rhs)


def not_(operand: Expr) -> Unary:
    return Unary("NOT", operand)


def contains(lhs: Expr, symbol: str) -> Binary:
    return Binary("CONTAINS", lhs, SymbolLit(symbol))


def call(fn_name: str, *args: Expr) -> Call:
    return Call(fn_name, tuple(args))


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


def number_input(
    name: str, text: str, lo: Num, hi: Num, default: Num | None = None, group: str | None = None
) -> NumberInput:
    return NumberInput(name, text, D(lo), D(hi), D(lo if default is None else default), group)


def boolean_input(name: str, text: str, default: bool = False) -> BooleanInput:
    return BooleanInput(name, text, default)


def list_input(
    name: str, text: str, items: Sequence[tuple[str, str]], default: str | None = None
) -> ListInput:
    choices = tuple(ListItem(s, v) for s, v in items)
    return ListInput(name, text, choices, choices[0].symbol if default is None else default)


def multilist_input(
    name: str, text: str, items: Sequence[tuple[str, str]], default: Sequence[str] = ()
) -> MultiListInput:
    return MultiListInput(name, text, tuple(ListItem(s, v) for s, v in items), tuple(default))


def date_input(
    name: str, text: str, lo: str, hi: str, default: str | None = None
) -> DateInput:
    return DateInput(
        name,
        text,
        date.fromisoformat(lo),
        date.fromisoformat(hi),
        date.fromisoformat(lo if default is None else default),
    )


def amount_input(name: str, text: str, currency: str, default: Num = 0) -> AmountInput:
    return AmountInput(name, text, currency, D(default))


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------


def case(expression: Expr, condition: Expr | None = None) -> Case:
    return Case(expression, condition)


def let(name: str, expression: Expr) -> LetVar:
    return LetVar(name, expression)


def fee(
    name: str,
    *cases: Case,
    vars: Sequence[LetVar] = (),
    optional: bool = False,
    currency: str | None = None,
) -> Fee:
    return Fee(name, tuple(cases), tuple(vars), optional, currency)


def flat_fee(name: str, amount: Num, optional: bool = False) -> Fee:
    """A fee with a single unconditional case."""
    return Fee(name, (Case(num(amount)),), optional=optional)
