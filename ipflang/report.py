"""Plain-text and JSON-ready renderings of results.

Text reports are Jinja2 templates under ``ipflang/templates``; the ``*_json``
functions return plain dicts (decimals as strings) for ``json.dumps``.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import jinja2

from .check import Diagnostic
from .composition import ComposedJurisdiction, CompositionMetrics, InheritanceAnalysis
from .evaluator import ComputeResult
from .expressions import format_expr
from .inputs import (
    AmountInput,
    BooleanInput,
    DateInput,
    Input,
    ListInput,
    MultiListInput,
    NumberInput,
)
from .provenance import ComputationProvenance
from .script import Script, VerifyComplete, VerifyMonotonic
from .values import IPFValue
from .verification import (
    CompletenessReport,
    FeeCompletenessReport,
    MonotonicityReport,
    VerificationResults,
)

_TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), "templates")
_ENV = jinja2.Environment(
    loader=jinja2.FileSystemLoader(_TEMPLATE_DIR),
    autoescape=False,
    keep_trailing_newline=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


def money(amount: Decimal) -> str:
    return f"{amount:,.2f}"


def signed(amount: Decimal) -> str:
    return f"+{money(amount)}" if amount >= 0 else money(amount)


_ENV.filters["money"] = money
_ENV.filters["signed"] = signed
_ENV.filters["expr"] = format_expr


def render(template_name: str, **kwargs: Any) -> str:
    """Render a Jinja2 template with the given keyword arguments."""
    template = _ENV.get_template(template_name)
    return template.render(**kwargs)


def describe_input(inp: Input) -> str:
    """One-line description of an input's kind and domain."""
    match inp:
        case NumberInput(min_value=lo, max_value=hi, default=d):
            return f"NUMBER [{lo}..{hi}] default {d}"
        case BooleanInput(default=d):
            return f"BOOLEAN default {'TRUE' if d else 'FALSE'}"
        case ListInput(default=d):
            return f"LIST {{{', '.join(inp.symbols)}}} default {d}"
        case MultiListInput(default=d):
            return f"MULTILIST {{{', '.join(inp.symbols)}}} default {{{', '.join(d)}}}"
        case DateInput(min_value=lo, max_value=hi, default=d):
            return f"DATE [{lo.isoformat()}..{hi.isoformat()}] default {d.isoformat()}"
        case AmountInput(currency=c, default=d):
            return f"AMOUNT {c} default {d}"
    raise TypeError(f"Unknown input type: {type(inp)}")


def describe_directive(directive: VerifyComplete | VerifyMonotonic) -> str:
    if isinstance(directive, VerifyComplete):
        return f"COMPLETE FEE {directive.fee_name}"
    return (
        f"MONOTONIC FEE {directive.fee_name} WITH RESPECT TO "
        f"{directive.with_respect_to} {directive.direction.value}"
    )


# ---------------------------------------------------------------------------
# Text reports
# ---------------------------------------------------------------------------


def render_diagnostics(path: str, diagnostics: Sequence[Diagnostic]) -> str:
    return render("diagnostics.txt.j2", path=path, diagnostics=diagnostics)


def render_info(script: Script) -> str:
    return render(
        "info.txt.j2",
        script=script,
        inputs=[(inp, describe_input(inp)) for inp in script.inputs],
        directives=[describe_directive(v) for v in script.verifications],
    )


def render_compute(result: ComputeResult, values: dict[str, IPFValue] | None = None) -> str:
    return render("compute.txt.j2", result=result, values=values or {})


def render_provenance(provenance: ComputationProvenance) -> str:
    return render("provenance.txt.j2", provenance=provenance)


def render_verification(
    completeness: CompletenessReport | Sequence[FeeCompletenessReport] = (),
    monotonicity: Sequence[MonotonicityReport] = (),
    errors: Sequence[str] = (),
    completeness_heading: str = "Completeness",
) -> str:
    if isinstance(completeness, CompletenessReport):
        completeness = completeness.fee_reports
    return render(
        "verification.txt.j2",
        completeness=completeness,
        completeness_heading=completeness_heading,
        monotonicity=monotonicity,
        errors=errors,
    )


def render_verification_results(results: VerificationResults) -> str:
    return render_verification(results.completeness, results.monotonicity, results.errors)


def render_composition(
    composed: ComposedJurisdiction,
    analyses: Sequence[InheritanceAnalysis] = (),
    metrics: CompositionMetrics | None = None,
) -> str:
    return render("composition.txt.j2", composed=composed, analyses=analyses, metrics=metrics)


# ---------------------------------------------------------------------------
# JSON-ready dicts
# ---------------------------------------------------------------------------


def value_json(value: IPFValue) -> Any:
    match value.value:
        case bool() as b:
            return b
        case tuple() as symbols:
            return list(symbols)
        case other:
            return str(other)


def compute_json(result: ComputeResult) -> dict[str, Any]:
    return {
        "mandatory_total": str(result.mandatory_total),
        "optional_total": str(result.optional_total),
        "grand_total": str(result.grand_total),
        "steps": list(result.steps),
        "active_returns": [{"symbol": r.symbol, "text": r.text} for r in result.active_returns],
    }


def provenance_json(provenance: ComputationProvenance) -> dict[str, Any]:
    return {
        "total_mandatory": str(provenance.total_mandatory),
        "total_optional": str(provenance.total_optional),
        "grand_total": str(provenance.grand_total),
        "inputs": {name: value_json(v) for name, v in provenance.input_values.items()},
        "fees": [
            {
                "fee": fp.fee_name,
                "optional": fp.is_optional,
                "currency": fp.currency,
                "total": str(fp.total_amount),
                "variables": dict(fp.variables),
                "cases": [
                    {
                        "expression": r.expression,
                        "condition": r.condition,
                        "condition_result": r.condition_result,
                        "did_contribute": r.did_contribute,
                        "contribution": str(r.contribution),
                    }
                    for r in fp.records
                ],
            }
            for fp in provenance.fee_provenances
        ],
        "counterfactuals": [
            {
                "input": c.input_name,
                "original_value": value_json(c.original_value),
                "alternative_value": value_json(c.alternative_value),
                "alternative_total": str(c.alternative_total),
                "difference": str(c.difference),
            }
            for c in provenance.counterfactuals
        ],
    }


def completeness_json(report: FeeCompletenessReport) -> dict[str, Any]:
    return {
        "fee": report.fee_name,
        "status": report.status.value,
        "is_complete": report.is_complete,
        "combinations_checked": report.total_combinations_checked,
        "domain_size": report.domain_size,
        "uncovered": report.uncovered_count,
        "gaps": [
            {
                "assignment": {name: value_json(v) for name, v in gap.assignment},
                "error": gap.error,
            }
            for gap in report.gaps
        ],
    }


def monotonicity_json(report: MonotonicityReport) -> dict[str, Any]:
    return {
        "fee": report.fee_name,
        "with_respect_to": report.with_respect_to,
        "direction": report.expected_direction.value,
        "is_monotonic": report.is_monotonic,
        "violations": [
            {
                "from_value": value_json(v.from_value),
                "from_amount": str(v.from_amount),
                "to_value": value_json(v.to_value),
                "to_amount": str(v.to_amount),
            }
            for v in report.violations
        ],
        "errors": list(report.errors),
    }


def verification_json(results: VerificationResults) -> dict[str, Any]:
    return {
        "passed": results.passed,
        "completeness": [completeness_json(r) for r in results.completeness],
        "monotonicity": [monotonicity_json(r) for r in results.monotonicity],
        "errors": list(results.errors),
    }


def analysis_json(analysis: InheritanceAnalysis) -> dict[str, Any]:
    return {
        "jurisdiction": analysis.jurisdiction_id,
        "inherited_fees": list(analysis.inherited_fees),
        "overridden_fees": list(analysis.overridden_fees),
        "defined_fees": list(analysis.defined_fees),
        "inherited_inputs": list(analysis.inherited_inputs),
        "overridden_inputs": list(analysis.overridden_inputs),
        "defined_inputs": list(analysis.defined_inputs),
        "reuse_percentage": str(analysis.reuse_percentage),
    }


def metrics_json(metrics: CompositionMetrics) -> dict[str, Any]:
    return {
        "total_jurisdictions": metrics.total_jurisdictions,
        "jurisdictions_with_inheritance": metrics.jurisdictions_with_inheritance,
        "inheritance_percentage": str(metrics.inheritance_percentage),
        "total_inherited_fees": metrics.total_inherited_fees,
        "total_overridden_fees": metrics.total_overridden_fees,
        "total_defined_fees": metrics.total_defined_fees,
        "reuse_percentage": str(metrics.reuse_percentage),
    }
