"""Expressions used by fee cases, conditions, local variables and returns.

An expression is built from:
  - Literals (numbers, booleans, dates, list symbols)
  - References to inputs or local variables (by name)
  - Unary and binary operators (arithmetic, comparison, logic, CONTAINS)
  - Calls to a fixed set of built-in functions (ROUND, MIN, COUNT, ...)

Expressions are immutable and carry no type information; types are inferred
by ``ipflang.check``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

# ---------------------------------------------------------------------------
# Expression AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NumberLit:
    """A decimal literal. Example: 12.50"""

    value: Decimal


@dataclass(frozen=True)
class BoolLit:
    value: bool


@dataclass(frozen=True)
class DateLit:
    """A calendar date literal. Example: DATE '2024-04-01'"""

    value: date


@dataclass(frozen=True)
class SymbolLit:
    """A list choice symbol, e.g. ``small`` in ``entity = small``.

    The parser produces a SymbolLit for every bare identifier that is neither
    an input nor a local variable in scope.
    """

    symbol: str


@dataclass(frozen=True)
class Ref:
    """A reference to an input or a local variable."""

    name: str


@dataclass(frozen=True)
class Unary:
    """Unary operator: ``-`` (negation) or ``NOT``."""

    op: str
    operand: Expr


@dataclass(frozen=True)
class Binary:
    """Binary operator.

    Arithmetic: + - * /
    Comparison: = != < <= > >=
    Logic:      AND OR
    Membership: CONTAINS (multilist CONTAINS symbol)
    """

    op: str
    lhs: Expr
    rhs: Expr


@dataclass(frozen=True)
class Call:
    """Application of a built-in function. Example: ROUND(amount * 0.2, 2)"""

    fn_name: str
    args: tuple[Expr, ...]


# Union of all expression forms
Expr = NumberLit | BoolLit | DateLit | SymbolLit | Ref | Unary | Binary | Call


ARITHMETIC_OPS = frozenset({"+", "-", "*", "/"})
COMPARISON_OPS = frozenset({"=", "!=", "<", "<=", ">", ">="})
LOGIC_OPS = frozenset({"AND", "OR"})
BUILTIN_FUNCTIONS = frozenset({"ROUND", "FLOOR", "CEIL", "ABS", "MIN", "MAX", "COUNT"})

_PRECEDENCE = {
    "OR": 1,
    "AND": 2,
    "NOT": 3,
    "=": 4,
    "!=": 4,
    "<": 4,
    "<=": 4,
    ">": 4,
    ">=": 4,
    "CONTAINS": 4,
    "+": 5,
    "-": 5,
    "*": 6,
    "/": 6,
}
_NEGATE = 7
_ATOM = 8


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def children(expr: Expr) -> tuple[Expr, ...]:
    if isinstance(expr, Unary):
        return (expr.operand,)
    if isinstance(expr, Binary):
        return (expr.lhs, expr.rhs)
    if isinstance(expr, Call):
        return expr.args
    return ()


def walk(expr: Expr) -> Iterator[Expr]:
    """Yield ``expr`` and every sub-expression, pre-order."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(children(node)))


def referenced_names(expr: Expr) -> frozenset[str]:
    return frozenset(n.name for n in walk(expr) if isinstance(n, Ref))


# ---------------------------------------------------------------------------
# Rendering back to source text
# ---------------------------------------------------------------------------


def _precedence(expr: Expr) -> int:
    if isinstance(expr, Binary):
        return _PRECEDENCE[expr.op]
    if isinstance(expr, Unary):
        return _PRECEDENCE["NOT"] if expr.op == "NOT" else _NEGATE
    return _ATOM


def _wrap(expr: Expr, needs_parens: bool) -> str:
    text = format_expr(expr)
    return f"({text})" if needs_parens else text


def format_expr(expr: Expr) -> str:
    """Render an expression as IPFLang source text.

    Parentheses are emitted only where precedence requires them, so
    ``parse(format_expr(e))`` yields ``e`` again.
    """
    if isinstance(expr, NumberLit):
        return str(expr.value)
    if isinstance(expr, BoolLit):
        return "TRUE" if expr.value else "FALSE"
    if isinstance(expr, DateLit):
        return f"DATE '{expr.value.isoformat()}'"
    if isinstance(expr, SymbolLit):
        return expr.symbol
    if isinstance(expr, Ref):
        return expr.name
    if isinstance(expr, Unary):
        prec = _precedence(expr)
        operand = _wrap(expr.operand, _precedence(expr.operand) < prec)
        return f"NOT {operand}" if expr.op == "NOT" else f"-{operand}"
    if isinstance(expr, Binary):
        prec = _PRECEDENCE[expr.op]
        # comparisons do not chain
        if prec == _PRECEDENCE["="]:
            lhs = _wrap(expr.lhs, _precedence(expr.lhs) <= prec)
        else:
            lhs = _wrap(expr.lhs, _precedence(expr.lhs) < prec)
        rhs = _wrap(expr.rhs, _precedence(expr.rhs) <= prec)
        return f"{lhs} {expr.op} {rhs}"
    if isinstance(expr, Call):
        return f"{expr.fn_name}({', '.join(format_expr(a) for a in expr.args)})"
    raise TypeError(f"Unknown expression type: {type(expr)}")
