"""Evaluation of fee schedules against concrete input values.

``bind(script, values)`` validates the values and returns an ``Evaluation``
offering three deterministic modes:

  compute()                      totals, a step trace and active returns
  compute_with_provenance()      the same totals plus a per-case audit trail
  compute_with_counterfactuals() provenance plus single-input what-if totals

All arithmetic is exact ``Decimal`` arithmetic. Nothing here mutates the
script; an ``EvaluationError`` aborts only the call that raised it.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal, DecimalException
from types import MappingProxyType

from .errors import EvaluationError
from .expressions import (
    ARITHMETIC_OPS,
    Binary,
    BoolLit,
    Call,
    DateLit,
    Expr,
    NumberLit,
    Ref,
    SymbolLit,
    Unary,
    format_expr,
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
from .provenance import ComputationProvenance, Counterfactual, FeeProvenance, ProvenanceRecord
from .script import Fee, Return, Script
from .values import (
    BooleanValue,
    DateValue,
    IPFValue,
    NumberValue,
    StringListValue,
    StringValue,
)

logger = logging.getLogger(__name__)

# Runtime representation of an expression value
Value = Decimal | bool | date | str | frozenset[str]


# ---------------------------------------------------------------------------
# Binding
# ---------------------------------------------------------------------------


def default_value(inp: Input) -> IPFValue:
    if isinstance(inp, (NumberInput, AmountInput)):
        return NumberValue(inp.default)
    if isinstance(inp, BooleanInput):
        return BooleanValue(inp.default)
    if isinstance(inp, ListInput):
        return StringValue(inp.default)
    if isinstance(inp, MultiListInput):
        return StringListValue(inp.default)
    if isinstance(inp, DateInput):
        return DateValue(inp.default)
    raise TypeError(f"Unknown input type: {type(inp)}")


def validate_value(inp: Input, value: IPFValue) -> str | None:
    """Return a problem description if ``value`` cannot be bound to ``inp``."""
    if isinstance(inp, (NumberInput, AmountInput)):
        if not isinstance(value, NumberValue):
            return f"Input '{inp.name}' expects a number, got {type(value).__name__}"
        if isinstance(inp, NumberInput) and not inp.min_value <= value.value <= inp.max_value:
            return f"Input '{inp.name}' value {value.value} is outside [{inp.min_value}, {inp.max_value}]"
    elif isinstance(inp, BooleanInput):
        if not isinstance(value, BooleanValue):
            return f"Input '{inp.name}' expects a boolean, got {type(value).__name__}"
    elif isinstance(inp, ListInput):
        if not isinstance(value, StringValue):
            return f"Input '{inp.name}' expects a single choice, got {type(value).__name__}"
        if value.value not in inp.symbols:
            return f"Input '{inp.name}' has no choice '{value.value}'"
    elif isinstance(inp, MultiListInput):
        if not isinstance(value, StringListValue):
            return f"Input '{inp.name}' expects a list of choices, got {type(value).__name__}"
        if len(set(value.value)) != len(value.value):
            return f"Input '{inp.name}' selects the same choice more than once"
        unknown = [s for s in value.value if s not in inp.symbols]
        if unknown:
            return f"Input '{inp.name}' has no choice(s) {', '.join(unknown)}"
    elif isinstance(inp, DateInput):
        if not isinstance(value, DateValue):
            return f"Input '{inp.name}' expects a date, got {type(value).__name__}"
        if not inp.min_value <= value.value <= inp.max_value:
            return f"Input '{inp.name}' date {value.value} is outside [{inp.min_value}, {inp.max_value}]"
    return None


def runtime_value(value: IPFValue) -> Value:
    if isinstance(value, StringListValue):
        return frozenset(value.value)
    return value.value


def bind(script: Script, values: Mapping[str, IPFValue] | None = None) -> Evaluation:
    """Bind values to a script's inputs; missing inputs take their defaults.

    Raises EvaluationError listing every value that does not fit its input.
    """
    values = values or {}
    declared = set(script.input_names)
    for name in values:
        if name not in declared:
            logger.warning("Ignoring value for undeclared input '%s'", name)

    bound: dict[str, IPFValue] = {}
    problems: list[str] = []
    for inp in script.inputs:
        value = values.get(inp.name)
        if value is None:
            bound[inp.name] = default_value(inp)
            continue
        problem = validate_value(inp, value)
        if problem is not None:
            problems.append(problem)
        bound[inp.name] = value

    if problems:
        raise EvaluationError("; ".join(problems))
    return Evaluation(script, MappingProxyType(bound))


# ---------------------------------------------------------------------------
# Expression evaluation
# ---------------------------------------------------------------------------


def _number(v: Value, expr: Expr) -> Decimal:
    if not isinstance(v, Decimal):
        raise EvaluationError(f"Expected a number in '{format_expr(expr)}', got {v!r}")
    return v


def _boolean(v: Value, expr: Expr) -> bool:
    if not isinstance(v, bool):
        raise EvaluationError(f"Expected a boolean in '{format_expr(expr)}', got {v!r}")
    return v


def _arithmetic(expr: Binary, lhs: Value, rhs: Value) -> Decimal:
    if expr.op == "-" and isinstance(lhs, date) and isinstance(rhs, date):
        return Decimal((lhs - rhs).days)
    a, b = _number(lhs, expr.lhs), _number(rhs, expr.rhs)
    match expr.op:
        case "+":
            return a + b
        case "-":
            return a - b
        case "*":
            return a * b
        case "/":
            if b == 0:
                raise EvaluationError(f"Division by zero in '{format_expr(expr)}'")
            return a / b
    raise EvaluationError(f"Unknown operator '{expr.op}'")


def _compare(op: str, lhs: Value, rhs: Value, expr: Expr) -> bool:
    if op == "=":
        return lhs == rhs
    if op == "!=":
        return lhs != rhs
    if type(lhs) is not type(rhs) or not isinstance(lhs, (Decimal, date)):
        raise EvaluationError(f"Cannot order {lhs!r} and {rhs!r} in '{format_expr(expr)}'")
    match op:
        case "<":
            return lhs < rhs  # type: ignore[operator]
        case "<=":
            return lhs <= rhs  # type: ignore[operator]
        case ">":
            return lhs > rhs  # type: ignore[operator]
        case ">=":
            return lhs >= rhs  # type: ignore[operator]
    raise EvaluationError(f"Unknown comparison '{op}'")


def _call(expr: Call, env: Mapping[str, Value]) -> Decimal:
    args = [evaluate(a, env) for a in expr.args]
    if expr.fn_name == "COUNT":
        selected = args[0]
        if not isinstance(selected, frozenset):
            raise EvaluationError(f"COUNT requires a multilist in '{format_expr(expr)}'")
        return Decimal(len(selected))

    nums = [_number(v, a) for v, a in zip(args, expr.args, strict=True)]
    match expr.fn_name:
        case "ROUND":
            places = nums[1] if len(nums) > 1 else Decimal(0)
            if places != places.to_integral_value():
                raise EvaluationError(f"ROUND places must be a whole number in '{format_expr(expr)}'")
            return nums[0].quantize(Decimal(1).scaleb(-int(places)), rounding=ROUND_HALF_UP)
        case "FLOOR":
            return nums[0].to_integral_value(rounding=ROUND_FLOOR)
        case "CEIL":
            return nums[0].to_integral_value(rounding=ROUND_CEILING)
        case "ABS":
            return abs(nums[0])
        case "MIN":
            return min(nums)
        case "MAX":
            return max(nums)
    raise EvaluationError(f"Unknown function '{expr.fn_name}'")


def evaluate(expr: Expr, env: Mapping[str, Value]) -> Value:
    """Evaluate an expression against input and variable values."""
    if isinstance(expr, (NumberLit, BoolLit, DateLit)):
        return expr.value
    if isinstance(expr, SymbolLit):
        return expr.symbol
    if isinstance(expr, Ref):
        if expr.name not in env:
            raise EvaluationError(f"Name '{expr.name}' has no value")
        return env[expr.name]
    if isinstance(expr, Unary):
        operand = evaluate(expr.operand, env)
        if expr.op == "NOT":
            return not _boolean(operand, expr.operand)
        return -_number(operand, expr.operand)
    if isinstance(expr, Binary):
        if expr.op == "AND":
            return _boolean(evaluate(expr.lhs, env), expr.lhs) and _boolean(
                evaluate(expr.rhs, env), expr.rhs
            )
        if expr.op == "OR":
            return _boolean(evaluate(expr.lhs, env), expr.lhs) or _boolean(
                evaluate(expr.rhs, env), expr.rhs
            )
        lhs = evaluate(expr.lhs, env)
        rhs = evaluate(expr.rhs, env)
        try:
            if expr.op in ARITHMETIC_OPS:
                return _arithmetic(expr, lhs, rhs)
        except DecimalException as e:
            raise EvaluationError(f"Arithmetic error in '{format_expr(expr)}': {e!r}") from e
        if expr.op == "CONTAINS":
            if not isinstance(lhs, frozenset):
                raise EvaluationError(f"CONTAINS requires a multilist in '{format_expr(expr)}'")
            return rhs in lhs
        return _compare(expr.op, lhs, rhs, expr)
    if isinstance(expr, Call):
        try:
            return _call(expr, env)
        except DecimalException as e:
            raise EvaluationError(f"Arithmetic error in '{format_expr(expr)}': {e!r}") from e
    raise TypeError(f"Unknown expression type: {type(expr)}")


def render_value(v: Value) -> str:
    if isinstance(v, bool):
        return "TRUE" if v else "FALSE"
    if isinstance(v, frozenset):
        return "{" + ", ".join(sorted(v)) + "}"
    if isinstance(v, date):
        return v.isoformat()
    return str(v)


# ---------------------------------------------------------------------------
# Fee evaluation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FeeOutcome:
    """Result of evaluating one fee.

    ``condition_results`` has one entry per case that was tried, in order;
    cases after ``fired`` are absent.
    """

    fee: Fee
    contribution: Decimal
    fired: int | None
    condition_results: tuple[bool | None, ...]
    variables: Mapping[str, Value]


def evaluate_fee(fee: Fee, env: Mapping[str, Value]) -> FeeOutcome:
    scope = dict(env)
    for v in fee.vars:
        scope[v.name] = evaluate(v.expression, scope)

    results: list[bool | None] = []
    last = len(fee.cases) - 1
    for i, case in enumerate(fee.cases):
        if case.condition is None:
            if i != last:
                raise EvaluationError(
                    f"Fee '{fee.name}': case {i} has no condition but is not the last case"
                )
            results.append(None)
        else:
            holds = _boolean(evaluate(case.condition, scope), case.condition)
            results.append(holds)
            if not holds:
                continue
        amount = _number(evaluate(case.expression, scope), case.expression)
        logger.debug("Fee %s: case %d fired, contributes %s", fee.name, i, amount)
        return FeeOutcome(
            fee, amount, i, tuple(results), {v.name: scope[v.name] for v in fee.vars}
        )

    return FeeOutcome(fee, Decimal(0), None, tuple(results), {v.name: scope[v.name] for v in fee.vars})


def _step(outcome: FeeOutcome) -> str:
    fee = outcome.fee
    label = f"{fee.name} (optional)" if fee.optional else fee.name
    if outcome.fired is None:
        return f"{label}: no case applies, contributes 0"
    case = fee.cases[outcome.fired]
    text = f"YIELD {format_expr(case.expression)}"
    if case.condition is not None:
        text += f" IF {format_expr(case.condition)}"
    return f"{label}: {text} -> {outcome.contribution}"


@dataclass(frozen=True)
class ComputeResult:
    mandatory_total: Decimal
    optional_total: Decimal
    steps: tuple[str, ...]
    active_returns: tuple[Return, ...]

    @property
    def grand_total(self) -> Decimal:
        return self.mandatory_total + self.optional_total


@dataclass(frozen=True)
class Evaluation:
    """A script with a complete set of validated input values."""

    script: Script
    values: Mapping[str, IPFValue]

    @property
    def environment(self) -> dict[str, Value]:
        return {name: runtime_value(v) for name, v in self.values.items()}

    def _outcomes(self) -> list[FeeOutcome]:
        env = self.environment
        return [evaluate_fee(fee, env) for fee in self.script.fees]

    def active_returns(self) -> tuple[Return, ...]:
        env = self.environment
        return tuple(
            r
            for r in self.script.returns
            if r.condition is None or _boolean(evaluate(r.condition, env), r.condition)
        )

    def compute(self) -> ComputeResult:
        mandatory = Decimal(0)
        optional = Decimal(0)
        steps: list[str] = []
        for outcome in self._outcomes():
            if outcome.fee.optional:
                optional += outcome.contribution
            else:
                mandatory += outcome.contribution
            steps.append(_step(outcome))
        return ComputeResult(mandatory, optional, tuple(steps), self.active_returns())

    def compute_with_provenance(self) -> ComputationProvenance:
        mandatory = Decimal(0)
        optional = Decimal(0)
        fee_provenances: list[FeeProvenance] = []
        for outcome in self._outcomes():
            fee = outcome.fee
            records: list[ProvenanceRecord] = []
            for i, case in enumerate(fee.cases):
                fired = i == outcome.fired
                records.append(
                    ProvenanceRecord(
                        expression=format_expr(case.expression),
                        condition=format_expr(case.condition) if case.condition is not None else None,
                        condition_result=(
                            outcome.condition_results[i] if i < len(outcome.condition_results) else None
                        ),
                        did_contribute=fired,
                        contribution=outcome.contribution if fired else Decimal(0),
                    )
                )
            if fee.optional:
                optional += outcome.contribution
            else:
                mandatory += outcome.contribution
            fee_provenances.append(
                FeeProvenance(
                    fee_name=fee.name,
                    is_optional=fee.optional,
                    total_amount=outcome.contribution,
                    records=tuple(records),
                    variables={k: render_value(v) for k, v in outcome.variables.items()},
                    currency=fee.currency,
                )
            )
        return ComputationProvenance(mandatory, optional, tuple(fee_provenances), self.values)

    def compute_with_counterfactuals(self) -> ComputationProvenance:
        provenance = self.compute_with_provenance()
        actual = provenance.grand_total
        counterfactuals: list[Counterfactual] = []
        for inp in self.script.inputs:
            current = self.values[inp.name]
            for alt in alternative_values(inp, current):
                values = dict(self.values)
                values[inp.name] = alt
                total = bind(self.script, values).compute().grand_total
                counterfactuals.append(
                    Counterfactual(inp.name, current, alt, total, total - actual)
                )
        logger.debug("Computed %d counterfactual(s)", len(counterfactuals))
        return dataclasses.replace(provenance, counterfactuals=tuple(counterfactuals))


# ---------------------------------------------------------------------------
# Counterfactual alternatives
# ---------------------------------------------------------------------------


def alternative_values(inp: Input, current: IPFValue) -> list[IPFValue]:
    """Admissible single-input substitutions for a what-if analysis.

    BOOLEAN flips, LIST takes every other choice, MULTILIST toggles one
    choice at a time, NUMBER and DATE take min, max and default, AMOUNT
    takes 0 and its default. The current value is never repeated.
    """
    candidates: list[IPFValue]
    if isinstance(inp, BooleanInput):
        assert isinstance(current, BooleanValue)
        candidates = [BooleanValue(not current.value)]
    elif isinstance(inp, ListInput):
        candidates = [StringValue(s) for s in inp.symbols]
    elif isinstance(inp, MultiListInput):
        assert isinstance(current, StringListValue)
        selected = set(current.value)
        candidates = []
        for sym in inp.symbols:
            toggled = selected ^ {sym}
            candidates.append(StringListValue(tuple(s for s in inp.symbols if s in toggled)))
    elif isinstance(inp, NumberInput):
        candidates = [NumberValue(v) for v in (inp.min_value, inp.max_value, inp.default)]
    elif isinstance(inp, DateInput):
        candidates = [DateValue(v) for v in (inp.min_value, inp.max_value, inp.default)]
    elif isinstance(inp, AmountInput):
        candidates = [NumberValue(Decimal(0)), NumberValue(inp.default)]
    else:
        raise TypeError(f"Unknown input type: {type(inp)}")

    result: list[IPFValue] = []
    for c in candidates:
        if _same_value(c, current) or any(_same_value(c, r) for r in result):
            continue
        result.append(c)
    return result


def _same_value(a: IPFValue, b: IPFValue) -> bool:
    if isinstance(a, StringListValue) and isinstance(b, StringListValue):
        return set(a.value) == set(b.value)
    return a == b
