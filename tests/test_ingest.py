import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from ipflang.errors import InputValueError
from ipflang.ingest import convert_value, load_values, values_from_mapping
from ipflang.parser import compile_script
from ipflang.script import Script
from ipflang.values import (
    BooleanValue,
    DateValue,
    NumberValue,
    StringListValue,
    StringValue,
)

SOURCE = """
INPUT claims NUMBER 'Claims' BETWEEN 1 AND 50 DEFAULT 10 ENDINPUT
INPUT urgent BOOLEAN 'Urgent' ENDINPUT
INPUT entity LIST 'Entity' CHOICE large AS 'Large' CHOICE small AS 'Small' ENDINPUT
INPUT states MULTILIST 'States' CHOICE DE AS 'Germany' CHOICE FR AS 'France' ENDINPUT
INPUT filed DATE 'Filed' BETWEEN '2020-01-01' AND '2030-12-31' ENDINPUT
INPUT paid AMOUNT 'Paid' CURRENCY EUR ENDINPUT
"""


@pytest.fixture
def script() -> Script:
    return compile_script(SOURCE)


def test_values_from_mapping(script: Script) -> None:
    values = values_from_mapping(
        script,
        {
            "claims": 15,
            "urgent": True,
            "entity": "small",
            "states": ["FR", "DE"],
            "filed": "2024-03-01",
            "paid": 120.5,
        },
    )
    assert values == {
        "claims": NumberValue(Decimal(15)),
        "urgent": BooleanValue(True),
        "entity": StringValue("small"),
        "states": StringListValue(("FR", "DE")),
        "filed": DateValue(date(2024, 3, 1)),
        "paid": NumberValue(Decimal("120.5")),
    }


def test_missing_and_null_keep_defaults(script: Script) -> None:
    assert values_from_mapping(script, {"claims": None}) == {}


def test_floats_keep_their_decimal_spelling(script: Script) -> None:
    paid = script.get_input("paid")
    assert paid is not None
    assert convert_value(paid, 0.1) == NumberValue(Decimal("0.1"))
    assert convert_value(paid, "12.30") == NumberValue(Decimal("12.30"))


@pytest.mark.parametrize(
    ("name", "raw", "message"),
    [
        ("claims", True, "expects a number"),
        ("claims", "many", "expects a number"),
        ("urgent", "yes", "true or false"),
        ("entity", 3, "a choice symbol"),
        ("states", "DE", "a list of choice symbols"),
        ("filed", "01/03/2024", "yyyy-MM-dd"),
    ],
)
def test_convert_value_rejects(script: Script, name: str, raw: object, message: str) -> None:
    inp = script.get_input(name)
    assert inp is not None
    with pytest.raises(ValueError, match=message):
        convert_value(inp, raw)


def test_all_problems_are_reported(script: Script) -> None:
    with pytest.raises(InputValueError) as exc:
        values_from_mapping(script, {"claims": 51, "entity": "medium", "urgent": 1})
    problems = exc.value.problems
    assert len(problems) == 3
    assert "outside" in problems[0]
    assert "true or false" in problems[1]
    assert "no choice 'medium'" in problems[2]


def test_undeclared_keys_are_logged(script: Script, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="ipflang.ingest"):
        values = values_from_mapping(script, {"pages": 3, "claims": 2})
    assert values == {"claims": NumberValue(Decimal(2))}
    assert "undeclared input 'pages'" in caplog.text


def test_load_values(script: Script, tmp_path: Path) -> None:
    path = tmp_path / "inputs.json"
    path.write_text(json.dumps({"claims": 30, "states": []}))
    assert load_values(script, path) == {
        "claims": NumberValue(Decimal(30)),
        "states": StringListValue(()),
    }


def test_load_values_rejects_bad_documents(script: Script, tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{claims: 3")
    with pytest.raises(InputValueError, match="invalid JSON"):
        load_values(script, broken)

    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]")
    with pytest.raises(InputValueError, match="JSON object"):
        load_values(script, listing)

    with pytest.raises(OSError):
        load_values(script, tmp_path / "missing.json")
