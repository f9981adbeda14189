"""Static verification of fee rules over bounded input domains.

Completeness: for every combination of the inputs a fee's conditions depend
on, some case must fire. Monotonicity: a fee's contribution must move in the
declared direction as one input varies over its samples, all others held at
their defaults.

Continuous inputs (NUMBER, DATE, AMOUNT) are sampled, not enumerated: their
bounds, their default, every literal they are compared against (and its
neighbours) plus optional evenly spaced interior points. A passing report is
therefore evidence over those samples, not a proof over the continuum.
"""

from __future__ import annotations

import itertools
import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from .config import VerifierSettings
from .errors import EvaluationError
from .evaluator import Value, default_value, evaluate_fee, runtime_value
from .expressions import (
    COMPARISON_OPS,
    Binary,
    DateLit,
    Expr,
    NumberLit,
    Unary,
    referenced_names,
    walk,
)
from .inputs import (
    AmountInput,
    BooleanInput,
    DateInput,
    Input,
    ListInput,
    MultiListInput,
    NumberInput,
)
from .script import Direction, Fee, Script, VerifyComplete, VerifyMonotonic
from .values import (
    BooleanValue,
    DateValue,
    IPFValue,
    NumberValue,
    StringListValue,
    StringValue,
)

logger = logging.getLogger(__name__)

_DEFAULT_SETTINGS = VerifierSettings()


# ---------------------------------------------------------------------------
# Dependencies of a fee
# ---------------------------------------------------------------------------


def _var_dependencies(fee: Fee) -> dict[str, frozenset[str]]:
    """Var name -> names it depends on, with Vars expanded to what they read."""
    deps: dict[str, frozenset[str]] = {}
    for v in fee.vars:
        deps[v.name] = _expand(referenced_names(v.expression), deps)
    return deps


def _expand(names: Iterable[str], deps: Mapping[str, frozenset[str]]) -> frozenset[str]:
    out: set[str] = set()
    for n in names:
        out |= deps.get(n, {n})
    return frozenset(out)


def condition_inputs(script: Script, fee: Fee) -> tuple[str, ...]:
    """Inputs that a fee's case conditions read, directly or through Vars.

    Returned in input declaration order.
    """
    deps = _var_dependencies(fee)
    names: set[str] = set()
    for case in fee.cases:
        if case.condition is not None:
            names |= _expand(referenced_names(case.condition), deps)
    return tuple(n for n in script.input_names if n in names)


def fee_inputs(script: Script, fee: Fee) -> tuple[str, ...]:
    """Every input the fee reads anywhere: Vars, case expressions or conditions."""
    deps = _var_dependencies(fee)
    names: set[str] = set()
    for v in fee.vars:
        names |= deps[v.name]
    for case in fee.cases:
        names |= _expand(referenced_names(case.expression), deps)
        if case.condition is not None:
            names |= _expand(referenced_names(case.condition), deps)
    return tuple(n for n in script.input_names if n in names)


def _literal_value(expr: Expr) -> Decimal | date | None:
    match expr:
        case NumberLit(value) | DateLit(value):
            return value
        case Unary("-", NumberLit(value)):
            return -value
    return None


def literal_boundaries(fee: Fee, input_name: str) -> list[Decimal | date]:
    """Literals compared against an expression that depends on ``input_name``."""
    deps = _var_dependencies(fee)
    found: list[Decimal | date] = []
    for case in fee.cases:
        if case.condition is None:
            continue
        for node in walk(case.condition):
            if not isinstance(node, Binary) or node.op not in COMPARISON_OPS:
                continue
            for side, other in ((node.lhs, node.rhs), (node.rhs, node.lhs)):
                value = _literal_value(side)
                if value is not None and input_name in _expand(referenced_names(other), deps):
                    found.append(value)
    return found


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------


def _numeric_samples(
    low: Decimal, high: Decimal | None, default: Decimal, literals: Sequence[Decimal], points: int
) -> list[Decimal]:
    samples = {low, default}
    if high is not None:
        samples.add(high)
    for lit in literals:
        for candidate in (lit - 1, lit, lit + 1):
            if candidate >= low and (high is None or candidate <= high):
                samples.add(candidate)
    top = high if high is not None else default
    if points and top > low:
        step = (top - low) / (points + 1)
        samples.update(low + step * i for i in range(1, points + 1))
    return sorted(samples)


def _date_samples(inp: DateInput, literals: Sequence[date], points: int) -> list[date]:
    samples = {inp.min_value, inp.max_value, inp.default}
    one_day = timedelta(days=1)
    for lit in literals:
        candidates = [lit]
        if lit > date.min:
            candidates.append(lit - one_day)
        if lit < date.max:
            candidates.append(lit + one_day)
        samples.update(c for c in candidates if inp.min_value <= c <= inp.max_value)
    span = (inp.max_value - inp.min_value).days
    if points and span > 1:
        for i in range(1, points + 1):
            samples.add(inp.min_value + timedelta(days=span * i // (points + 1)))
    return sorted(samples)


def _subsets(symbols: Sequence[str], max_size: int) -> list[tuple[str, ...]]:
    out: list[tuple[str, ...]] = []
    for size in range(0, min(max_size, len(symbols)) + 1):
        out.extend(itertools.combinations(symbols, size))
    return out


def input_domain(
    inp: Input,
    literals: Sequence[Decimal | date] = (),
    settings: VerifierSettings = _DEFAULT_SETTINGS,
) -> list[IPFValue]:
    """Bounded, naturally ordered sample domain of one input."""
    if isinstance(inp, BooleanInput):
        return [BooleanValue(False), BooleanValue(True)]
    if isinstance(inp, ListInput):
        return [StringValue(s) for s in inp.symbols]
    if isinstance(inp, MultiListInput):
        return [StringListValue(s) for s in _subsets(inp.symbols, settings.multilist_subset_size)]
    if isinstance(inp, NumberInput):
        nums = [x for x in literals if isinstance(x, Decimal)]
        return [
            NumberValue(v)
            for v in _numeric_samples(
                inp.min_value, inp.max_value, inp.default, nums, settings.sample_points
            )
        ]
    if isinstance(inp, AmountInput):
        nums = [x for x in literals if isinstance(x, Decimal)]
        return [
            NumberValue(v)
            for v in _numeric_samples(Decimal(0), None, inp.default, nums, settings.sample_points)
        ]
    if isinstance(inp, DateInput):
        dates = [x for x in literals if isinstance(x, date)]
        return [DateValue(v) for v in _date_samples(inp, dates, settings.sample_points)]
    raise TypeError(f"Unknown input type: {type(inp)}")


def default_environment(script: Script) -> dict[str, Value]:
    return {inp.name: runtime_value(default_value(inp)) for inp in script.inputs}


# ---------------------------------------------------------------------------
# Completeness
# ---------------------------------------------------------------------------


class CompletenessStatus(Enum):
    COMPLETE = "COMPLETE"
    INCOMPLETE = "INCOMPLETE"
    # Enumeration stopped at the combination limit without finding a gap.
    PARTIAL = "PARTIAL"


@dataclass(frozen=True)
class Gap:
    """An input assignment under which no case of the fee fires."""

    assignment: tuple[tuple[str, IPFValue], ...]
    error: str | None = None

    def __str__(self) -> str:
        text = ", ".join(f"{name}={value}" for name, value in self.assignment) or "(defaults)"
        if self.error:
            text += f" [error: {self.error}]"
        return text


@dataclass(frozen=True)
class FeeCompletenessReport:
    fee_name: str
    status: CompletenessStatus
    total_combinations_checked: int
    domain_size: int
    uncovered_count: int
    gaps: tuple[Gap, ...]
    inputs: tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.status is CompletenessStatus.COMPLETE

    @property
    def gaps_truncated(self) -> bool:
        return self.uncovered_count > len(self.gaps)


@dataclass(frozen=True)
class CompletenessReport:
    fee_reports: tuple[FeeCompletenessReport, ...]

    @property
    def is_complete(self) -> bool:
        return all(r.is_complete for r in self.fee_reports)

    def get_fee(self, name: str) -> FeeCompletenessReport | None:
        for r in self.fee_reports:
            if r.fee_name == name:
                return r
        return None


def verify_fee_completeness(
    script: Script, fee: Fee, settings: VerifierSettings = _DEFAULT_SETTINGS
) -> FeeCompletenessReport:
    names = condition_inputs(script, fee)
    domains: list[list[IPFValue]] = []
    for name in names:
        inp = script.get_input(name)
        assert inp is not None
        domains.append(input_domain(inp, literal_boundaries(fee, name), settings))
    domain_size = math.prod(len(d) for d in domains)
    logger.debug(
        "Fee %s: %d input(s) in domain, %d combination(s)", fee.name, len(names), domain_size
    )

    base = default_environment(script)
    checked = 0
    uncovered = 0
    gaps: list[Gap] = []
    for combo in itertools.product(*domains):
        if checked >= settings.max_combinations:
            logger.warning(
                "Fee %s: stopped after %d of %d combinations",
                fee.name,
                checked,
                domain_size,
            )
            break
        checked += 1
        env = dict(base)
        env.update((n, runtime_value(v)) for n, v in zip(names, combo, strict=True))
        error: str | None = None
        try:
            covered = evaluate_fee(fee, env).fired is not None
        except EvaluationError as e:
            covered, error = False, str(e)
        if covered:
            continue
        uncovered += 1
        if len(gaps) < settings.max_gaps:
            gaps.append(Gap(tuple(zip(names, combo, strict=True)), error))

    if uncovered:
        status = CompletenessStatus.INCOMPLETE
    elif checked < domain_size:
        status = CompletenessStatus.PARTIAL
    else:
        status = CompletenessStatus.COMPLETE
    return FeeCompletenessReport(
        fee.name, status, checked, domain_size, uncovered, tuple(gaps), names
    )


def verify_completeness(
    script: Script, settings: VerifierSettings = _DEFAULT_SETTINGS
) -> CompletenessReport:
    """Check every fee of the script."""
    return CompletenessReport(
        tuple(verify_fee_completeness(script, fee, settings) for fee in script.fees)
    )


# ---------------------------------------------------------------------------
# Monotonicity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """Adjacent samples whose contributions move against the declared direction."""

    from_value: IPFValue
    from_amount: Decimal
    to_value: IPFValue
    to_amount: Decimal

    def __str__(self) -> str:
        return f"{self.from_value} -> {self.from_amount}, {self.to_value} -> {self.to_amount}"


@dataclass(frozen=True)
class MonotonicityReport:
    fee_name: str
    with_respect_to: str
    expected_direction: Direction
    samples: tuple[tuple[IPFValue, Decimal], ...]
    violations: tuple[Violation, ...]
    errors: tuple[str, ...] = ()

    @property
    def is_monotonic(self) -> bool:
        return not self.violations and not self.errors


def check_monotonicity(
    script: Script,
    fee: Fee,
    inp: Input,
    direction: Direction,
    settings: VerifierSettings = _DEFAULT_SETTINGS,
) -> MonotonicityReport:
    env = default_environment(script)
    samples: list[tuple[IPFValue, Decimal]] = []
    errors: list[str] = []
    for value in input_domain(inp, literal_boundaries(fee, inp.name), settings):
        env[inp.name] = runtime_value(value)
        try:
            samples.append((value, evaluate_fee(fee, env).contribution))
        except EvaluationError as e:
            errors.append(f"{inp.name}={value}: {e}")

    violations: list[Violation] = []
    for (v1, a1), (v2, a2) in itertools.pairwise(samples):
        bad = a2 < a1 if direction is Direction.INCREASING else a2 > a1
        if bad:
            violations.append(Violation(v1, a1, v2, a2))
    return MonotonicityReport(
        fee.name, inp.name, direction, tuple(samples), tuple(violations), tuple(errors)
    )


def _directive_problem(script: Script, directive: VerifyComplete | VerifyMonotonic) -> str | None:
    fee = script.get_fee(directive.fee_name)
    if fee is None:
        return f"Verify directive names unknown fee '{directive.fee_name}'"
    if isinstance(directive, VerifyMonotonic):
        if script.get_input(directive.with_respect_to) is None:
            return (
                f"MONOTONIC directive for fee '{fee.name}' names unknown input "
                f"'{directive.with_respect_to}'"
            )
        if directive.with_respect_to not in fee_inputs(script, fee):
            return (
                f"Fee '{fee.name}' never references input '{directive.with_respect_to}' "
                f"named by its MONOTONIC directive"
            )
    return None


def verify_monotonicity(
    script: Script, settings: VerifierSettings = _DEFAULT_SETTINGS
) -> tuple[MonotonicityReport, ...]:
    """Check every MONOTONIC directive of the script.

    Directives that name unknown fees or inputs are skipped; ``run_verifications``
    reports them.
    """
    reports: list[MonotonicityReport] = []
    for directive in script.verifications:
        if not isinstance(directive, VerifyMonotonic):
            continue
        fee = script.get_fee(directive.fee_name)
        inp = script.get_input(directive.with_respect_to)
        if fee is None or inp is None:
            continue
        reports.append(check_monotonicity(script, fee, inp, directive.direction, settings))
    return tuple(reports)


# ---------------------------------------------------------------------------
# Embedded directives
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VerificationResults:
    completeness: tuple[FeeCompletenessReport, ...] = ()
    monotonicity: tuple[MonotonicityReport, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return (
            not self.errors
            and all(r.is_complete for r in self.completeness)
            and all(r.is_monotonic for r in self.monotonicity)
        )


def run_verifications(
    script: Script, settings: VerifierSettings = _DEFAULT_SETTINGS
) -> VerificationResults:
    """Execute the VERIFY directives embedded in the script, in order."""
    completeness: list[FeeCompletenessReport] = []
    monotonicity: list[MonotonicityReport] = []
    errors: list[str] = []
    for directive in script.verifications:
        problem = _directive_problem(script, directive)
        if problem is not None:
            errors.append(problem)
            continue
        fee = script.get_fee(directive.fee_name)
        assert fee is not None
        match directive:
            case VerifyComplete():
                completeness.append(verify_fee_completeness(script, fee, settings))
            case VerifyMonotonic(with_respect_to=name, direction=direction):
                inp = script.get_input(name)
                assert inp is not None
                monotonicity.append(check_monotonicity(script, fee, inp, direction, settings))
    logger.debug(
        "Ran %d directive(s): %d error(s)", len(script.verifications), len(errors)
    )
    return VerificationResults(tuple(completeness), tuple(monotonicity), tuple(errors))
