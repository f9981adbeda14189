"""Script: the unit of compilation of a fee schedule.

A script SC = (I, F, G, R, V) consists of:
  I: input declarations (the domain the schedule is evaluated over)
  F: fee rules, each an ordered list of YIELD cases
  G: presentation groups
  R: returns (informational outputs activated by a condition)
  V: verification directives (completeness / monotonicity assertions)

Every name referenced by an expression, a directive or an input's group must
resolve to a declared entity; ``ipflang.check`` enforces this.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from .expressions import Expr
from .inputs import Input

# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LetVar:
    """A local variable of a fee, evaluated before the cases.

    Example: LET extra AS claims - 10
    """

    name: str
    expression: Expr


@dataclass(frozen=True)
class Case:
    """One ``YIELD expr [IF cond]`` clause.

    A case without a condition always fires; only the last case of a fee
    may omit its condition.
    """

    expression: Expr
    condition: Expr | None = None


@dataclass(frozen=True)
class Fee:
    """A named fee rule.

    Example:
        FEE excess_claims OPTIONAL
          LET extra AS claims - 10
          YIELD extra * 50 IF claims > 10
        ENDFEE
    """

    name: str
    cases: tuple[Case, ...]
    vars: tuple[LetVar, ...] = ()
    optional: bool = False
    currency: str | None = None

    def get_var(self, name: str) -> LetVar | None:
        for v in self.vars:
            if v.name == name:
                return v
        return None


# ---------------------------------------------------------------------------
# Groups, returns, versions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Group:
    """Presentation grouping for inputs. Weight only orders display."""

    name: str
    text: str
    weight: Decimal = Decimal(0)


@dataclass(frozen=True)
class Return:
    """An informational output, active when its condition holds.

    A return without a condition is always active.
    """

    symbol: str
    text: str
    condition: Expr | None = None


@dataclass(frozen=True)
class Version:
    id: str
    description: str | None = None


# ---------------------------------------------------------------------------
# Verification directives
# ---------------------------------------------------------------------------


class Direction(Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"


@dataclass(frozen=True)
class VerifyComplete:
    """VERIFY COMPLETE FEE <fee>"""

    fee_name: str


@dataclass(frozen=True)
class VerifyMonotonic:
    """VERIFY MONOTONIC FEE <fee> WITH RESPECT TO <input> <direction>"""

    fee_name: str
    with_respect_to: str
    direction: Direction


# Union of all directive forms
Verify = VerifyComplete | VerifyMonotonic


# ---------------------------------------------------------------------------
# Script
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Script:
    inputs: tuple[Input, ...] = ()
    fees: tuple[Fee, ...] = ()
    groups: tuple[Group, ...] = ()
    returns: tuple[Return, ...] = ()
    verifications: tuple[Verify, ...] = ()
    version: Version | None = None

    def get_input(self, name: str) -> Input | None:
        for i in self.inputs:
            if i.name == name:
                return i
        return None

    def get_fee(self, name: str) -> Fee | None:
        for f in self.fees:
            if f.name == name:
                return f
        return None

    def get_group(self, name: str) -> Group | None:
        for g in self.groups:
            if g.name == name:
                return g
        return None

    @property
    def input_names(self) -> tuple[str, ...]:
        return tuple(i.name for i in self.inputs)

    @property
    def fee_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fees)
