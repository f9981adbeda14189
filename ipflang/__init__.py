"""ipflang: a fee-schedule language with evaluation, composition and verification."""

from .inputs import (
    AmountInput,
    BooleanInput,
    DateInput,
    Input,
    InputKind,
    ListInput,
    ListItem,
    MultiListInput,
    NumberInput,
)
from .expressions import (
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
    referenced_names,
)
from .script import (
    Case,
    Direction,
    Fee,
    Group,
    LetVar,
    Return,
    Script,
    Verify,
    VerifyComplete,
    VerifyMonotonic,
    Version,
)
from .values import (
    BooleanValue,
    DateValue,
    IPFValue,
    NumberValue,
    StringListValue,
    StringValue,
)
from .check import CheckResult, Diagnostic, DiagnosticKind, Severity, check_script
from .parser import ParseResult, compile_script, parse, parse_expression
from .evaluator import ComputeResult, Evaluation, bind
from .provenance import ComputationProvenance, Counterfactual, FeeProvenance, ProvenanceRecord
from .composition import (
    ComposedJurisdiction,
    CompositionMetrics,
    InheritanceAnalysis,
    Jurisdiction,
    JurisdictionComposer,
    JurisdictionRegistry,
)
from .verification import (
    CompletenessReport,
    CompletenessStatus,
    FeeCompletenessReport,
    Gap,
    MonotonicityReport,
    VerificationResults,
    Violation,
    run_verifications,
    verify_completeness,
    verify_monotonicity,
)
from .helpers import (
    D, TRUE, FALSE, num, ref, sym, day, binop, add, sub, mul, div, eq, gt, lt,
    and_, or_, not_, contains, call, number_input, boolean_input, list_input, multilist_input,
    date_input, amount_input, case, let, fee, flat_fee
)
from .config import VerifierSettings
from .errors import (
    CompositionError,
    Err,
    EvaluationError,
    InputValueError,
    IPFLangError,
    Ok,
    ParseError,
    Result,
)

__all__ = [
    # Inputs
    "AmountInput", "BooleanInput", "DateInput", "Input", "InputKind",
    "ListInput", "ListItem", "MultiListInput", "NumberInput",
    # Expressions
    "Binary", "BoolLit", "Call", "DateLit", "Expr", "NumberLit", "Ref",
    "SymbolLit", "Unary", "format_expr", "referenced_names",
    # Script
    "Case", "Direction", "Fee", "Group", "LetVar", "Return", "Script",
    "Verify", "VerifyComplete", "VerifyMonotonic", "Version",
    # Values
    "BooleanValue", "DateValue", "IPFValue", "NumberValue",
    "StringListValue", "StringValue",
    # Parsing and checking
    "CheckResult", "Diagnostic", "DiagnosticKind", "Severity", "check_script",
    "ParseResult", "compile_script", "parse", "parse_expression",
    # Evaluation
    "ComputeResult", "Evaluation", "bind",
    "ComputationProvenance", "Counterfactual", "FeeProvenance", "ProvenanceRecord",
    # Composition
    "ComposedJurisdiction", "CompositionMetrics", "InheritanceAnalysis",
    "Jurisdiction", "JurisdictionComposer", "JurisdictionRegistry",
    # Verification
    "CompletenessReport", "CompletenessStatus", "FeeCompletenessReport", "Gap",
    "MonotonicityReport", "VerificationResults", "Violation",
    "run_verifications", "verify_completeness", "verify_monotonicity",
    "VerifierSettings",
    # Builders
    "D", "TRUE", "FALSE", "num", "ref", "sym", "day", "binop", "add", "sub", "mul", "div",
    "eq", "gt", "lt", "and_", "or_", "not_", "contains", "call",
    "number_input", "boolean_input", "list_input", "multilist_input",
    "date_input", "amount_input", "case", "let", "fee", "flat_fee",
    # Errors
    "CompositionError", "EvaluationError", "InputValueError", "IPFLangError", "ParseError",
    # Result
    "Ok", "Err", "Result",
]
