from datetime import date
from decimal import Decimal

import pytest

from ipflang.check import DiagnosticKind, Severity
from ipflang.errors import ParseError
from ipflang.expressions import Binary, Call, DateLit, NumberLit, Ref, SymbolLit, Unary, format_expr
from ipflang.inputs import (
    AmountInput,
    BooleanInput,
    DateInput,
    ListInput,
    MultiListInput,
    NumberInput,
)
from ipflang.lexer import TokenType, tokenize
from ipflang.parser import compile_script, parse, parse_expression
from ipflang.script import Direction, VerifyComplete, VerifyMonotonic

FULL_SCRIPT = """
# every declaration form
VERSION 'v1' 'Test schedule'

GROUP general AS 'General' WEIGHT 2

INPUT claims NUMBER 'Number of claims'
  BETWEEN 1 AND 50
  DEFAULT 10
  GROUP general
ENDINPUT

INPUT urgent BOOLEAN 'Urgent handling'
ENDINPUT

INPUT entity LIST 'Entity size'
  CHOICE large AS 'Large'
  CHOICE small AS 'Small'
  DEFAULT small
ENDINPUT

INPUT states MULTILIST 'Designated states'
  CHOICE DE AS 'Germany'
  CHOICE FR AS 'France'
  DEFAULT DE, FR
ENDINPUT

INPUT filed DATE 'Filing date'
  BETWEEN '2020-01-01' AND '2030-12-31'
  DEFAULT '2024-06-01'
ENDINPUT

INPUT paid AMOUNT 'Amount already paid'
  CURRENCY EUR
  DEFAULT 12.50
ENDINPUT

FEE basic
  YIELD 100
ENDFEE

FEE excess_claims OPTIONAL CURRENCY EUR
  LET extra AS claims - 10
  YIELD extra * 50 IF claims > 10
ENDFEE

FEE designation
  YIELD COUNT(states) * 20 IF states CONTAINS DE
  YIELD 0
ENDFEE

FEE reduction
  YIELD -paid IF entity = small AND NOT urgent
  YIELD 0
ENDFEE

RETURN small AS 'Small entity' IF entity = small

VERIFY COMPLETE FEE basic
VERIFY MONOTONIC FEE excess_claims WITH RESPECT TO claims INCREASING
"""


def test_parse_full_script() -> None:
    result = parse(FULL_SCRIPT)
    assert result.is_valid, [str(d) for d in result.diagnostics]
    script = result.script
    assert script is not None

    assert script.version is not None
    assert script.version.id == "v1"
    assert script.version.description == "Test schedule"
    assert script.input_names == ("claims", "urgent", "entity", "states", "filed", "paid")
    assert script.fee_names == ("basic", "excess_claims", "designation", "reduction")
    assert script.groups[0].weight == Decimal(2)
    assert [r.symbol for r in script.returns] == ["small"]
    assert script.verifications == (
        VerifyComplete("basic"),
        VerifyMonotonic("excess_claims", "claims", Direction.INCREASING),
    )


def test_input_declarations() -> None:
    script = compile_script(FULL_SCRIPT)

    claims = script.get_input("claims")
    assert isinstance(claims, NumberInput)
    assert (claims.min_value, claims.max_value, claims.default) == (1, 50, 10)
    assert claims.group == "general"

    assert isinstance(script.get_input("urgent"), BooleanInput)

    entity = script.get_input("entity")
    assert isinstance(entity, ListInput)
    assert entity.symbols == ("large", "small")
    assert entity.default == "small"

    states = script.get_input("states")
    assert isinstance(states, MultiListInput)
    assert states.default == ("DE", "FR")

    filed = script.get_input("filed")
    assert isinstance(filed, DateInput)
    assert filed.default == date(2024, 6, 1)

    paid = script.get_input("paid")
    assert isinstance(paid, AmountInput)
    assert paid.currency == "EUR"
    assert paid.default == Decimal("12.50")


def test_fee_declarations() -> None:
    script = compile_script(FULL_SCRIPT)

    fee = script.get_fee("excess_claims")
    assert fee is not None
    assert fee.optional
    assert fee.currency == "EUR"
    assert [v.name for v in fee.vars] == ["extra"]
    assert len(fee.cases) == 1
    assert fee.cases[0].condition == Binary(">", Ref("claims"), NumberLit(Decimal(10)))

    basic = script.get_fee("basic")
    assert basic is not None
    assert not basic.optional
    assert basic.cases[0].condition is None


def test_bare_identifiers_become_list_symbols() -> None:
    script = compile_script(FULL_SCRIPT)
    reduction = script.get_fee("reduction")
    assert reduction is not None
    cond = reduction.cases[0].condition
    assert isinstance(cond, Binary) and cond.op == "AND"
    assert cond.lhs == Binary("=", Ref("entity"), SymbolLit("small"))

    designation = script.get_fee("designation")
    assert designation is not None
    assert designation.cases[0].condition == Binary("CONTAINS", Ref("states"), SymbolLit("DE"))

    # A LET variable stays a reference inside its fee
    excess = script.get_fee("excess_claims")
    assert excess is not None
    assert excess.cases[0].expression == Binary("*", Ref("extra"), NumberLit(Decimal(50)))


def test_omitted_defaults() -> None:
    script = compile_script(
        """
        INPUT n NUMBER 'n' BETWEEN 3 AND 9 ENDINPUT
        INPUT b BOOLEAN 'b' ENDINPUT
        INPUT l LIST 'l' CHOICE x AS 'X' CHOICE y AS 'Y' ENDINPUT
        INPUT m MULTILIST 'm' CHOICE x AS 'X' ENDINPUT
        INPUT d DATE 'd' BETWEEN '2024-01-01' AND '2024-12-31' ENDINPUT
        INPUT a AMOUNT 'a' CURRENCY USD ENDINPUT
        """
    )
    defaults = {inp.name: inp.default for inp in script.inputs}
    assert defaults == {
        "n": Decimal(3),
        "b": False,
        "l": "x",
        "m": (),
        "d": date(2024, 1, 1),
        "a": Decimal(0),
    }


def test_syntax_error_yields_no_script() -> None:
    result = parse("FEE broken\n  YIELD 10 IF\nENDFEE\n")
    assert result.script is None
    assert not result.is_valid
    assert result.errors[0].kind == DiagnosticKind.SYNTAX
    assert result.errors[0].line == 3


def test_all_syntax_errors_reported() -> None:
    source = """
INPUT n NUMBER 'n'
  DEFAULT 3
ENDINPUT

FEE ok
  YIELD 1
ENDFEE

FEE bad
  YIELD * 2
ENDFEE

RETURN AS 'missing symbol'
"""
    result = parse(source)
    assert result.script is None
    lines = [d.line for d in result.errors]
    # NUMBER without BETWEEN, bad YIELD expression, RETURN without symbol
    assert len(result.errors) == 3
    assert lines == sorted(lines)
    assert all(d.kind == DiagnosticKind.SYNTAX for d in result.errors)


def test_group_attribute_inside_broken_input() -> None:
    source = """
GROUP g AS 'G'
INPUT n NUMBER 'n'
  BETWEEN x AND 3
  GROUP g
ENDINPUT
FEE f
  YIELD 1
ENDFEE
"""
    result = parse(source)
    assert result.script is None
    assert len(result.errors) == 1


def test_lexical_errors() -> None:
    result = parse("FEE f YIELD 1 ENDFEE\nINPUT s LIST 'unterminated\n")
    assert result.script is None
    assert any("column" in d.message for d in result.errors)


def test_type_errors_keep_script() -> None:
    result = parse("FEE f\n  YIELD unknown_input + 1\nENDFEE\n")
    assert result.script is not None
    assert not result.is_valid
    assert result.errors[0].kind == DiagnosticKind.TYPE
    assert result.errors[0].check == "name_resolved"


def test_compile_script_raises_with_all_diagnostics() -> None:
    with pytest.raises(ParseError) as exc:
        compile_script("FEE a YIELD b ENDFEE\nFEE c YIELD d ENDFEE\n")
    assert len(exc.value.diagnostics) == 2
    assert all(d.severity == Severity.ERROR for d in exc.value.diagnostics)


def test_duplicate_version_is_reported() -> None:
    result = parse("VERSION 'a'\nVERSION 'b'\n")
    assert result.script is None
    assert "more than once" in result.errors[0].message


def test_string_escape_and_comments() -> None:
    tokens, errors = tokenize("GROUP g AS 'Applicant''s size' # trailing comment\n")
    assert not errors
    strings = [t.value for t in tokens if t.type == TokenType.STRING]
    assert strings == ["Applicant's size"]
    assert tokens[-1].type == TokenType.EOF


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


def test_expression_precedence() -> None:
    expr = parse_expression("1 + 2 * 3")
    assert expr == Binary(
        "+",
        NumberLit(Decimal(1)),
        Binary("*", NumberLit(Decimal(2)), NumberLit(Decimal(3))),
    )

    expr = parse_expression("a > 1 AND b OR NOT c")
    assert isinstance(expr, Binary) and expr.op == "OR"
    assert isinstance(expr.rhs, Unary) and expr.rhs.op == "NOT"


def test_comparison_spellings_normalize() -> None:
    assert parse_expression("a == 1") == parse_expression("a = 1")
    assert parse_expression("a <> 1") == parse_expression("a != 1")


def test_calls_and_dates() -> None:
    expr = parse_expression("ROUND(x / 3, 2)")
    assert isinstance(expr, Call)
    assert expr.fn_name == "ROUND"
    assert len(expr.args) == 2

    expr = parse_expression("d < DATE '2024-01-31'")
    assert isinstance(expr, Binary)
    assert expr.rhs == DateLit(date(2024, 1, 31))


def test_unknown_function_is_syntax_error() -> None:
    with pytest.raises(ParseError):
        parse_expression("SQRT(4)")


@pytest.mark.parametrize(
    "text",
    [
        "(claims - 10) * 50",
        "a - (b - c)",
        "-(a + b)",
        "NOT (a AND b)",
        "(a = 1) = TRUE",
        "ROUND(MIN(a, b) / 3, 2)",
        "d - DATE '2024-01-01' > 30",
    ],
)
def test_format_expr_round_trips(text: str) -> None:
    expr = parse_expression(text)
    assert format_expr(expr) == text
    assert parse_expression(format_expr(expr)) == expr
