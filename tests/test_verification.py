from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from ipflang.config import VerifierSettings
from ipflang.parser import compile_script
from ipflang.errors import Err, Ok
from ipflang.script import Direction, Script, VerifyComplete, VerifyMonotonic
from ipflang.values import BooleanValue, NumberValue, StringListValue, StringValue
from ipflang.verification import (
    CompletenessStatus,
    Violation,
    check_monotonicity,
    condition_inputs,
    input_domain,
    literal_boundaries,
    run_verifications,
    verify_completeness,
    verify_fee_completeness,
    verify_monotonicity,
)

GAPPY = """
INPUT entity LIST 'Entity'
  CHOICE large AS 'Large'
  CHOICE small AS 'Small'
  CHOICE micro AS 'Micro'
ENDINPUT
INPUT claims NUMBER 'Claims' BETWEEN 1 AND 50 DEFAULT 10 ENDINPUT

FEE f
  YIELD 100 IF entity = large
  YIELD 50 IF entity = small AND claims > 20
ENDFEE
"""

STEP = """
INPUT claims NUMBER 'Claims' BETWEEN 1 AND 50 DEFAULT 10 ENDINPUT
FEE f
  YIELD 100 IF claims > 20
  YIELD 10
ENDFEE
"""


def only_fee(script: Script):
    (fee,) = script.fees
    return fee


def test_unconditional_fee_is_complete() -> None:
    script = compile_script("FEE f YIELD 100 ENDFEE")
    report = verify_fee_completeness(script, only_fee(script))
    assert report.status is CompletenessStatus.COMPLETE
    assert report.total_combinations_checked == 1
    assert report.gaps == ()


def test_fallback_makes_fee_complete() -> None:
    script = compile_script(STEP)
    report = verify_completeness(script)
    assert report.is_complete
    f = report.get_fee("f")
    assert f is not None
    # bounds, default, and 20 with its neighbours
    assert f.domain_size == 6
    assert f.inputs == ("claims",)


def test_gaps_are_reported() -> None:
    script = compile_script(GAPPY)
    report = verify_fee_completeness(script, only_fee(script))
    assert report.status is CompletenessStatus.INCOMPLETE
    assert report.domain_size == 18
    assert report.total_combinations_checked == 18
    # small below 21 (four samples) and every micro sample
    assert report.uncovered_count == 10
    assert report.gaps[0].assignment == (
        ("entity", StringValue("small")),
        ("claims", NumberValue(Decimal(1))),
    )
    assert {dict(g.assignment)["entity"] for g in report.gaps} == {
        StringValue("small"),
        StringValue("micro"),
    }
    assert not report.gaps_truncated


def test_gap_list_is_truncated() -> None:
    script = compile_script(GAPPY)
    report = verify_fee_completeness(script, only_fee(script), VerifierSettings(max_gaps=3))
    assert len(report.gaps) == 3
    assert report.uncovered_count == 10
    assert report.gaps_truncated


def test_combination_limit_gives_partial(caplog: pytest.LogCaptureFixture) -> None:
    script = compile_script(STEP)
    report = verify_fee_completeness(
        script, only_fee(script), VerifierSettings(max_combinations=2)
    )
    assert report.status is CompletenessStatus.PARTIAL
    assert report.total_combinations_checked == 2
    assert not report.is_complete
    assert "stopped after 2 of 6" in caplog.text


def test_evaluation_error_is_a_gap() -> None:
    script = compile_script(
        """
        INPUT n NUMBER 'n' BETWEEN 0 AND 4 ENDINPUT
        FEE f
          YIELD 1 IF 10 / n > 2
          YIELD 0
        ENDFEE
        """
    )
    report = verify_fee_completeness(script, only_fee(script))
    assert report.status is CompletenessStatus.INCOMPLETE
    assert report.uncovered_count == 1
    (gap,) = report.gaps
    assert gap.assignment == (("n", NumberValue(Decimal(0))),)
    assert gap.error is not None and "Division by zero" in gap.error
    assert "[error:" in str(gap)


def test_only_condition_inputs_are_enumerated() -> None:
    script = compile_script(
        """
        INPUT claims NUMBER 'Claims' BETWEEN 1 AND 50 DEFAULT 10 ENDINPUT
        INPUT pages NUMBER 'Pages' BETWEEN 1 AND 500 DEFAULT 30 ENDINPUT
        INPUT urgent BOOLEAN 'Urgent' ENDINPUT
        FEE f
          LET per_page AS pages * 2
          LET threshold AS claims + 1
          YIELD per_page IF threshold > 5
          YIELD 0
        ENDFEE
        """
    )
    assert condition_inputs(script, only_fee(script)) == ("claims",)


def test_input_domains() -> None:
    script = compile_script(
        """
        INPUT b BOOLEAN 'b' ENDINPUT
        INPUT m MULTILIST 'm' CHOICE x AS 'X' CHOICE y AS 'Y' CHOICE z AS 'Z' ENDINPUT
        INPUT a AMOUNT 'a' CURRENCY EUR DEFAULT 100 ENDINPUT
        """
    )
    b, m, a = script.inputs
    assert input_domain(b) == [BooleanValue(False), BooleanValue(True)]
    assert input_domain(m) == [
        StringListValue(()),
        StringListValue(("x",)),
        StringListValue(("y",)),
        StringListValue(("z",)),
    ]
    assert len(input_domain(m, settings=VerifierSettings(multilist_subset_size=3))) == 8
    assert input_domain(a) == [NumberValue(Decimal(0)), NumberValue(Decimal(100))]
    assert len(input_domain(a, settings=VerifierSettings(sample_points=4))) == 6


def test_negative_literals_are_boundaries() -> None:
    script = compile_script(
        """
        INPUT t NUMBER 'Temperature' BETWEEN -10 AND 10 DEFAULT 0 ENDINPUT
        FEE heating
          YIELD 40 IF t < -5
          YIELD 0
        ENDFEE
        """
    )
    fee = only_fee(script)
    assert literal_boundaries(fee, "t") == [Decimal(-5)]
    report = verify_fee_completeness(script, fee)
    assert report.is_complete
    # bounds, default, and -5 with its neighbours
    assert report.domain_size == 6


def test_literals_at_the_calendar_edge() -> None:
    script = compile_script(
        """
        INPUT filed DATE 'Filed' BETWEEN '0001-01-01' AND '9999-12-31' DEFAULT '2024-01-01' ENDINPUT
        FEE late
          YIELD 150 IF filed < DATE '9999-12-31' AND filed > DATE '0001-01-01'
          YIELD 0
        ENDFEE
        VERIFY COMPLETE FEE late
        VERIFY MONOTONIC FEE late WITH RESPECT TO filed DECREASING
        """
    )
    filed = script.get_input("filed")
    assert filed is not None
    samples = [v.value for v in input_domain(filed, literal_boundaries(only_fee(script), "filed"))]
    assert samples == [
        date(1, 1, 1),
        date(1, 1, 2),
        date(2024, 1, 1),
        date(9999, 12, 30),
        date(9999, 12, 31),
    ]
    results = run_verifications(script)
    assert results.errors == ()
    assert results.completeness[0].is_complete
    assert not results.monotonicity[0].is_monotonic


def test_proportional_fee_is_monotonic() -> None:
    script = compile_script(
        """
        INPUT amt AMOUNT 'Amount' CURRENCY EUR DEFAULT 100 ENDINPUT
        FEE f YIELD amt * 0.1 ENDFEE
        VERIFY MONOTONIC FEE f WITH RESPECT TO amt INCREASING
        """
    )
    (report,) = verify_monotonicity(script, VerifierSettings(sample_points=4))
    assert report.is_monotonic
    assert report.violations == ()
    amounts = [amount for _, amount in report.samples]
    assert amounts == sorted(amounts)
    assert amounts[-1] == Decimal(10)


def test_monotonicity_violation() -> None:
    script = compile_script(STEP)
    fee = only_fee(script)
    claims = script.get_input("claims")
    assert claims is not None

    assert check_monotonicity(script, fee, claims, Direction.INCREASING).is_monotonic

    report = check_monotonicity(script, fee, claims, Direction.DECREASING)
    assert not report.is_monotonic
    assert report.violations == (
        Violation(NumberValue(Decimal(20)), Decimal(10), NumberValue(Decimal(21)), Decimal(100)),
    )


def test_monotonicity_records_evaluation_errors() -> None:
    script = compile_script(
        """
        INPUT n NUMBER 'n' BETWEEN 0 AND 4 DEFAULT 2 ENDINPUT
        FEE f YIELD 12 / n ENDFEE
        """
    )
    n = script.get_input("n")
    assert n is not None
    report = check_monotonicity(script, only_fee(script), n, Direction.DECREASING)
    assert not report.is_monotonic
    assert len(report.errors) == 1
    assert report.errors[0].startswith("n=")


def test_run_verifications() -> None:
    script = compile_script(
        STEP
        + """
VERIFY COMPLETE FEE f
VERIFY MONOTONIC FEE f WITH RESPECT TO claims INCREASING
"""
    )
    results = run_verifications(script)
    assert results.passed
    assert [r.fee_name for r in results.completeness] == ["f"]
    assert [r.with_respect_to for r in results.monotonicity] == ["claims"]


def test_failing_directive_fails_the_run() -> None:
    script = compile_script(GAPPY + "VERIFY COMPLETE FEE f\n")
    results = run_verifications(script)
    assert not results.passed
    assert results.errors == ()


def test_directive_problems() -> None:
    script = compile_script(
        """
        INPUT a NUMBER 'a' BETWEEN 0 AND 9 ENDINPUT
        INPUT b BOOLEAN 'b' ENDINPUT
        FEE f YIELD a * 2 ENDFEE
        VERIFY MONOTONIC FEE f WITH RESPECT TO b INCREASING
        """
    )
    script = replace(
        script,
        verifications=(
            *script.verifications,
            VerifyComplete("missing"),
            VerifyMonotonic("f", "nowhere", Direction.INCREASING),
        ),
    )
    results = run_verifications(script)
    assert not results.passed
    assert results.completeness == ()
    assert results.monotonicity == ()
    assert len(results.errors) == 3
    assert "never references input 'b'" in results.errors[0]
    assert "unknown fee 'missing'" in results.errors[1]
    assert "unknown input 'nowhere'" in results.errors[2]


class TestSettingsFromEnv:
    @pytest.fixture(autouse=True)
    def isolated_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "IPFLANG_MAX_COMBINATIONS",
            "IPFLANG_MAX_GAPS",
            "IPFLANG_SAMPLE_POINTS",
            "IPFLANG_MULTILIST_SUBSET_SIZE",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self) -> None:
        assert VerifierSettings.from_env() == Ok(VerifierSettings())

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("IPFLANG_MAX_COMBINATIONS", "5")
        monkeypatch.setenv("IPFLANG_SAMPLE_POINTS", " 3 ")
        assert VerifierSettings.from_env() == Ok(
            VerifierSettings(max_combinations=5, sample_points=3)
        )

    @pytest.mark.parametrize(
        ("name", "value"),
        [("IPFLANG_MAX_COMBINATIONS", "lots"), ("IPFLANG_MAX_COMBINATIONS", "0"), ("IPFLANG_MAX_GAPS", "-1")],
    )
    def test_invalid_values(self, monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
        monkeypatch.setenv(name, value)
        match VerifierSettings.from_env():
            case Err(e):
                assert name in str(e)
            case Ok(settings):
                pytest.fail(f"expected an error, got {settings}")
