from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from .expressions import (
    ARITHMETIC_OPS,
    COMPARISON_OPS,
    LOGIC_OPS,
    Binary,
    BoolLit,
    Call,
    DateLit,
    Expr,
    NumberLit,
    Ref,
    SymbolLit,
    Unary,
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
from .script import Fee, Script, VerifyComplete, VerifyMonotonic


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class DiagnosticKind(Enum):
    SYNTAX = "syntax"
    TYPE = "type"


@dataclass(frozen=True)
class Diagnostic:
    check: str
    severity: Severity
    kind: DiagnosticKind
    entity: str | None
    message: str
    line: int | None = None

    def __str__(self) -> str:
        where = f"line {self.line}: " if self.line is not None else ""
        entity = f"[{self.entity}] " if self.entity else ""
        return f"{where}{entity}{self.message}"


@dataclass(frozen=True)
class CheckResult:
    diagnostics: tuple[Diagnostic, ...]

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity == Severity.ERROR)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity == Severity.WARNING)

    @property
    def is_well_formed(self) -> bool:
        return len(self.errors) == 0


# ---------------------------------------------------------------------------
# Expression types
# ---------------------------------------------------------------------------


class ValueType(Enum):
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    SYMBOL = "symbol"
    SYMBOL_SET = "symbol set"


@dataclass(frozen=True)
class ExprType:
    """Inferred type of an expression.

    ``list_input`` names the LIST / MULTILIST input whose choices a SYMBOL or
    SYMBOL_SET value ranges over.
    """

    kind: ValueType
    list_input: str | None = None

    def __str__(self) -> str:
        if self.list_input:
            return f"{self.kind.value} of '{self.list_input}'"
        return self.kind.value


NUMBER = ExprType(ValueType.NUMBER)
BOOLEAN = ExprType(ValueType.BOOLEAN)
DATE = ExprType(ValueType.DATE)

_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


def input_type(inp: Input) -> ExprType:
    if isinstance(inp, (NumberInput, AmountInput)):
        return NUMBER
    if isinstance(inp, BooleanInput):
        return BOOLEAN
    if isinstance(inp, DateInput):
        return DATE
    if isinstance(inp, ListInput):
        return ExprType(ValueType.SYMBOL, inp.name)
    if isinstance(inp, MultiListInput):
        return ExprType(ValueType.SYMBOL_SET, inp.name)
    raise TypeError(f"Unknown input type: {type(inp)}")


@dataclass
class CheckContext:
    script: Script
    entity: str | None = None
    diagnostics: list[Diagnostic] = field(default_factory=list)
    _scope: dict[str, ExprType] = field(default_factory=dict)

    def error(self, check: str, message: str) -> None:
        self.diagnostics.append(
            Diagnostic(check, Severity.ERROR, DiagnosticKind.TYPE, self.entity, message)
        )

    def warning(self, check: str, message: str) -> None:
        self.diagnostics.append(
            Diagnostic(check, Severity.WARNING, DiagnosticKind.TYPE, self.entity, message)
        )

    def begin(self, entity: str | None) -> None:
        self.entity = entity
        self._scope = {}

    def bind_var(self, name: str, t: ExprType) -> None:
        self._scope[name] = t

    def lookup(self, name: str) -> ExprType | None:
        if name in self._scope:
            return self._scope[name]
        inp = self.script.get_input(name)
        if inp is not None:
            return input_type(inp)
        return None

    def list_symbols(self, list_input: str) -> tuple[str, ...]:
        inp = self.script.get_input(list_input)
        if isinstance(inp, (ListInput, MultiListInput)):
            return inp.symbols
        return ()


# ---------------------------------------------------------------------------
# Type inference
# ---------------------------------------------------------------------------


def _check_symbol(sym: SymbolLit, target: ExprType, ctx: CheckContext) -> None:
    if sym.symbol not in ctx.list_symbols(target.list_input or ""):
        ctx.error(
            "choice_declared",
            f"'{sym.symbol}' is not a choice of input '{target.list_input}'",
        )


def _infer_comparison(expr: Binary, ctx: CheckContext) -> ExprType | None:
    # A bare symbol takes its meaning from the list it is compared against.
    if isinstance(expr.lhs, SymbolLit) or isinstance(expr.rhs, SymbolLit):
        sym, other = (
            (expr.lhs, expr.rhs) if isinstance(expr.lhs, SymbolLit) else (expr.rhs, expr.lhs)
        )
        assert isinstance(sym, SymbolLit)
        other_t = infer_type(other, ctx)
        if other_t is None:
            return BOOLEAN
        if expr.op not in ("=", "!=") or other_t.kind != ValueType.SYMBOL:
            ctx.error("name_resolved", f"Name '{sym.symbol}' is not declared")
            return BOOLEAN
        _check_symbol(sym, other_t, ctx)
        return BOOLEAN

    lhs_t = infer_type(expr.lhs, ctx)
    rhs_t = infer_type(expr.rhs, ctx)
    if lhs_t is None or rhs_t is None:
        return BOOLEAN
    if expr.op in ("=", "!="):
        if lhs_t != rhs_t:
            ctx.error(
                "operand_types",
                f"Cannot compare {lhs_t} with {rhs_t} using '{expr.op}'",
            )
    elif lhs_t != rhs_t or lhs_t.kind not in (ValueType.NUMBER, ValueType.DATE):
        ctx.error(
            "operand_types",
            f"Operator '{expr.op}' requires two numbers or two dates, got {lhs_t} and {rhs_t}",
        )
    return BOOLEAN


def _infer_call(expr: Call, ctx: CheckContext) -> ExprType | None:
    arg_types = [infer_type(a, ctx) for a in expr.args]
    n = len(expr.args)
    name = expr.fn_name

    if name == "COUNT":
        if n != 1:
            ctx.error("call_arity", f"COUNT expects 1 argument, got {n}")
        elif arg_types[0] is not None and arg_types[0].kind != ValueType.SYMBOL_SET:
            ctx.error("operand_types", f"COUNT requires a multilist input, got {arg_types[0]}")
        return NUMBER

    if name == "ROUND":
        arity_ok = n in (1, 2)
        expected = "1 or 2 arguments"
    elif name in ("FLOOR", "CEIL", "ABS"):
        arity_ok = n == 1
        expected = "1 argument"
    elif name in ("MIN", "MAX"):
        arity_ok = n >= 1
        expected = "at least 1 argument"
    else:
        ctx.error("name_resolved", f"Function '{name}' is not a built-in function")
        return None

    if not arity_ok:
        ctx.error("call_arity", f"{name} expects {expected}, got {n}")
    for i, t in enumerate(arg_types):
        if t is not None and t != NUMBER:
            ctx.error("operand_types", f"Argument {i} to {name} must be a number, got {t}")
    return NUMBER


def infer_type(expr: Expr, ctx: CheckContext) -> ExprType | None:
    """Infer the type of ``expr``, recording diagnostics on ``ctx``.

    Returns None when the type cannot be determined; the cause has already
    been reported.
    """
    if isinstance(expr, NumberLit):
        return NUMBER
    if isinstance(expr, BoolLit):
        return BOOLEAN
    if isinstance(expr, DateLit):
        return DATE
    if isinstance(expr, SymbolLit):
        ctx.error("name_resolved", f"Name '{expr.symbol}' is not declared")
        return None
    if isinstance(expr, Ref):
        t = ctx.lookup(expr.name)
        if t is None:
            ctx.error("name_resolved", f"Name '{expr.name}' is not declared")
        return t
    if isinstance(expr, Unary):
        operand_t = infer_type(expr.operand, ctx)
        expected = BOOLEAN if expr.op == "NOT" else NUMBER
        if operand_t is not None and operand_t != expected:
            ctx.error(
                "operand_types",
                f"Operator '{expr.op}' requires a {expected}, got {operand_t}",
            )
        return expected
    if isinstance(expr, Binary):
        if expr.op in COMPARISON_OPS:
            return _infer_comparison(expr, ctx)
        if expr.op == "CONTAINS":
            lhs_t = infer_type(expr.lhs, ctx)
            if lhs_t is not None and lhs_t.kind != ValueType.SYMBOL_SET:
                ctx.error("operand_types", f"CONTAINS requires a multilist input, got {lhs_t}")
            elif lhs_t is not None:
                if isinstance(expr.rhs, SymbolLit):
                    _check_symbol(expr.rhs, lhs_t, ctx)
                else:
                    ctx.error(
                        "operand_types",
                        f"CONTAINS requires a choice of '{lhs_t.list_input}' on the right",
                    )
            return BOOLEAN
        lhs_t = infer_type(expr.lhs, ctx)
        rhs_t = infer_type(expr.rhs, ctx)
        if expr.op in LOGIC_OPS:
            for t in (lhs_t, rhs_t):
                if t is not None and t != BOOLEAN:
                    ctx.error("operand_types", f"Operator '{expr.op}' requires booleans, got {t}")
            return BOOLEAN
        if expr.op in ARITHMETIC_OPS:
            if lhs_t is None or rhs_t is None:
                return NUMBER
            if expr.op == "-" and lhs_t == DATE and rhs_t == DATE:
                return NUMBER
            if lhs_t != NUMBER or rhs_t != NUMBER:
                ctx.error(
                    "operand_types",
                    f"Operator '{expr.op}' requires numbers, got {lhs_t} and {rhs_t}",
                )
            return NUMBER
    if isinstance(expr, Call):
        return _infer_call(expr, ctx)
    raise TypeError(f"Unknown expression type: {type(expr)}")


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


def _check_duplicates(ctx: CheckContext, kind: str, names: list[str]) -> None:
    for name, c in Counter(names).items():
        if c > 1:
            ctx.error("duplicate_name", f"{kind} '{name}' is declared {c} times")


def check_input(inp: Input, ctx: CheckContext) -> None:
    ctx.begin(f"input {inp.name}")

    if inp.group is not None and ctx.script.get_group(inp.group) is None:
        ctx.error("group_declared", f"Group '{inp.group}' is not declared")

    if isinstance(inp, (NumberInput, DateInput)):
        if inp.min_value > inp.max_value:
            ctx.error(
                "range_ordered",
                f"Minimum {inp.min_value} is greater than maximum {inp.max_value}",
            )
        elif not inp.min_value <= inp.default <= inp.max_value:
            ctx.error(
                "default_in_range",
                f"Default {inp.default} is outside [{inp.min_value}, {inp.max_value}]",
            )
    elif isinstance(inp, (ListInput, MultiListInput)):
        if not inp.items:
            ctx.error("choice_declared", "List input declares no choices")
        _check_duplicates(ctx, "Choice", list(inp.symbols))
        defaults = (inp.default,) if isinstance(inp, ListInput) else inp.default
        for d in defaults:
            if d not in inp.symbols:
                ctx.error("choice_declared", f"Default '{d}' is not one of the declared choices")
        if isinstance(inp, MultiListInput):
            _check_duplicates(ctx, "Default choice", list(inp.default))
    elif isinstance(inp, AmountInput):
        if not _CURRENCY_CODE.match(inp.currency):
            ctx.error("currency_code", f"'{inp.currency}' is not a three-letter currency code")


def check_fee(fee: Fee, ctx: CheckContext) -> None:
    ctx.begin(f"fee {fee.name}")

    if fee.currency is not None and not _CURRENCY_CODE.match(fee.currency):
        ctx.error("currency_code", f"'{fee.currency}' is not a three-letter currency code")

    _check_duplicates(ctx, "Variable", [v.name for v in fee.vars])
    for v in fee.vars:
        if ctx.script.get_input(v.name) is not None:
            ctx.error("var_shadows_input", f"Variable '{v.name}' shadows an input of the same name")
        t = infer_type(v.expression, ctx)
        if t is not None:
            ctx.bind_var(v.name, t)

    if not fee.cases:
        ctx.warning("fee_has_cases", "Fee declares no YIELD cases and always contributes 0")

    fallback_at: int | None = None
    for i, case in enumerate(fee.cases):
        if fallback_at is not None:
            ctx.error(
                "unreachable_case",
                f"Case {i} is unreachable: case {fallback_at} has no condition",
            )
        t = infer_type(case.expression, ctx)
        if t is not None and t != NUMBER:
            ctx.error("yield_numeric", f"Case {i} yields a {t}, expected a number")
        if case.condition is None:
            if fallback_at is None:
                fallback_at = i
            continue
        ct = infer_type(case.condition, ctx)
        if ct is not None and ct != BOOLEAN:
            ctx.error("condition_boolean", f"Condition of case {i} is a {ct}, expected a boolean")


def check_script(script: Script) -> CheckResult:
    """Resolve names and infer types over a whole script."""
    ctx = CheckContext(script=script)

    ctx.begin(None)
    _check_duplicates(ctx, "Input", list(script.input_names))
    _check_duplicates(ctx, "Fee", list(script.fee_names))
    _check_duplicates(ctx, "Group", [g.name for g in script.groups])
    _check_duplicates(ctx, "Return", [r.symbol for r in script.returns])

    for inp in script.inputs:
        check_input(inp, ctx)

    for fee in script.fees:
        check_fee(fee, ctx)

    for ret in script.returns:
        ctx.begin(f"return {ret.symbol}")
        if ret.condition is not None:
            t = infer_type(ret.condition, ctx)
            if t is not None and t != BOOLEAN:
                ctx.error("condition_boolean", f"Return condition is a {t}, expected a boolean")

    for directive in script.verifications:
        ctx.begin(f"verify {directive.fee_name}")
        if script.get_fee(directive.fee_name) is None:
            ctx.error("verify_target", f"Fee '{directive.fee_name}' is not declared")
        if isinstance(directive, VerifyMonotonic):
            if script.get_input(directive.with_respect_to) is None:
                ctx.error(
                    "verify_target",
                    f"Input '{directive.with_respect_to}' is not declared",
                )
        else:
            assert isinstance(directive, VerifyComplete)

    return CheckResult(tuple(ctx.diagnostics))
