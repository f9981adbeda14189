from ipflang.check import DiagnosticKind, Severity, check_script
from ipflang.helpers import case, fee, gt, num, number_input, ref
from ipflang.parser import parse
from ipflang.script import Script

INPUTS = """
INPUT claims NUMBER 'Claims' BETWEEN 1 AND 50 DEFAULT 10 ENDINPUT
INPUT urgent BOOLEAN 'Urgent' ENDINPUT
INPUT entity LIST 'Entity' CHOICE large AS 'Large' CHOICE small AS 'Small' ENDINPUT
INPUT states MULTILIST 'States' CHOICE DE AS 'Germany' CHOICE FR AS 'France' ENDINPUT
INPUT filed DATE 'Filed' BETWEEN '2020-01-01' AND '2030-12-31' ENDINPUT
"""


def error_checks(source: str) -> set[str]:
    result = parse(INPUTS + source)
    assert result.script is not None, [str(d) for d in result.diagnostics]
    return {d.check for d in result.errors}


def test_valid_script() -> None:
    result = parse(
        INPUTS
        + """
FEE f
  LET age AS filed - DATE '2020-01-01'
  YIELD claims * 10 + COUNT(states) IF entity = small AND states CONTAINS FR
  YIELD ROUND(age / 365, 0) IF urgent OR age > 100
  YIELD MAX(claims, 5)
ENDFEE
"""
    )
    assert result.is_valid, [str(d) for d in result.diagnostics]
    assert not result.warnings


def test_name_resolved() -> None:
    assert error_checks("FEE f YIELD missing * 2 ENDFEE") == {"name_resolved"}


def test_condition_boolean() -> None:
    assert error_checks("FEE f YIELD 1 IF claims ENDFEE") == {"condition_boolean"}


def test_yield_numeric() -> None:
    assert error_checks("FEE f YIELD claims > 1 ENDFEE") == {"yield_numeric"}


def test_operand_types() -> None:
    assert error_checks("FEE f YIELD claims + TRUE ENDFEE") == {"operand_types"}
    assert error_checks("FEE f YIELD 1 IF filed > 3 ENDFEE") == {"operand_types"}
    assert error_checks("FEE f YIELD 1 IF claims CONTAINS DE ENDFEE") == {"operand_types"}


def test_list_symbol_must_be_declared() -> None:
    assert error_checks("FEE f YIELD 1 IF entity = medium ENDFEE") == {"choice_declared"}
    assert error_checks("FEE f YIELD 1 IF states CONTAINS IT ENDFEE") == {"choice_declared"}


def test_symbol_outside_list_comparison() -> None:
    assert error_checks("FEE f YIELD 1 IF claims = small ENDFEE") == {"name_resolved"}


def test_unreachable_case() -> None:
    result = parse(INPUTS + "FEE f\n  YIELD 1\n  YIELD 2 IF urgent\nENDFEE\n")
    assert [d.check for d in result.errors] == ["unreachable_case"]
    assert result.errors[0].entity == "fee f"


def test_duplicate_names() -> None:
    assert error_checks("FEE f YIELD 1 ENDFEE\nFEE f YIELD 2 ENDFEE") == {"duplicate_name"}
    assert "duplicate_name" in error_checks(
        "INPUT claims BOOLEAN 'again' ENDINPUT\nFEE f YIELD 1 ENDFEE"
    )


def test_default_in_range() -> None:
    result = parse("INPUT n NUMBER 'n' BETWEEN 1 AND 5 DEFAULT 9 ENDINPUT")
    assert [d.check for d in result.errors] == ["default_in_range"]

    result = parse("INPUT d DATE 'd' BETWEEN '2024-01-01' AND '2024-12-31' DEFAULT '2025-01-01' ENDINPUT")
    assert [d.check for d in result.errors] == ["default_in_range"]


def test_range_ordered() -> None:
    result = parse("INPUT n NUMBER 'n' BETWEEN 5 AND 1 ENDINPUT")
    assert [d.check for d in result.errors] == ["range_ordered"]


def test_list_default_declared() -> None:
    result = parse("INPUT l LIST 'l' CHOICE a AS 'A' DEFAULT b ENDINPUT")
    assert [d.check for d in result.errors] == ["choice_declared"]


def test_group_declared() -> None:
    result = parse("INPUT n BOOLEAN 'n' GROUP nowhere ENDINPUT")
    assert [d.check for d in result.errors] == ["group_declared"]


def test_verify_target() -> None:
    checks = error_checks(
        "FEE f YIELD claims ENDFEE\n"
        "VERIFY COMPLETE FEE g\n"
        "VERIFY MONOTONIC FEE f WITH RESPECT TO pages INCREASING\n"
    )
    assert checks == {"verify_target"}


def test_currency_code() -> None:
    result = parse("INPUT a AMOUNT 'a' CURRENCY euro ENDINPUT")
    assert [d.check for d in result.errors] == ["currency_code"]


def test_var_shadows_input() -> None:
    assert error_checks("FEE f LET claims AS 3 YIELD claims ENDFEE") == {"var_shadows_input"}


def test_call_arity() -> None:
    assert error_checks("FEE f YIELD ROUND() ENDFEE") == {"call_arity"}
    assert error_checks("FEE f YIELD ABS(1, 2) ENDFEE") == {"call_arity"}


def test_empty_fee_is_a_warning() -> None:
    result = parse("FEE f ENDFEE")
    assert result.is_valid
    assert [d.check for d in result.warnings] == ["fee_has_cases"]
    assert result.warnings[0].severity == Severity.WARNING


def test_return_condition_boolean() -> None:
    assert error_checks("RETURN r AS 'r' IF claims + 1") == {"condition_boolean"}


def test_check_script_on_built_script() -> None:
    script = Script(
        inputs=(number_input("claims", "Claims", 1, 50, 10),),
        fees=(fee("f", case(num(5), gt(ref("claims"), num(10))), case(ref("pages"))),),
    )
    result = check_script(script)
    assert not result.is_well_formed
    assert [d.check for d in result.errors] == ["name_resolved"]
    assert result.errors[0].kind == DiagnosticKind.TYPE
