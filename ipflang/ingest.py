"""Input values from JSON.

The JSON document is an object keyed by input name:

    {"claims": 15, "urgent": true, "entity": "small",
     "states": ["DE", "FR"], "filing_date": "2024-03-01", "fee_paid": 120.50}

A missing (or null) key leaves the input at its declared default.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

from .errors import InputValueError
from .evaluator import validate_value
from .inputs import (
    AmountInput,
    BooleanInput,
    DateInput,
    Input,
    ListInput,
    MultiListInput,
    NumberInput,
)
from .script import Script
from .values import (
    BooleanValue,
    DateValue,
    IPFValue,
    NumberValue,
    StringListValue,
    StringValue,
)

logger = logging.getLogger(__name__)


def _to_decimal(raw: object) -> Decimal | None:
    # bool is an int subclass; true/false are not numbers here.
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return Decimal(str(raw))
    if isinstance(raw, str):
        try:
            return Decimal(raw.strip())
        except InvalidOperation:
            return None
    return None


def convert_value(inp: Input, raw: object) -> IPFValue:
    """Convert one JSON value for ``inp``; raises ValueError when malformed."""
    match inp:
        case NumberInput() | AmountInput():
            number = _to_decimal(raw)
            if number is None or not number.is_finite():
                raise ValueError(f"'{inp.name}' expects a number, got {raw!r}")
            return NumberValue(number)
        case BooleanInput():
            if not isinstance(raw, bool):
                raise ValueError(f"'{inp.name}' expects true or false, got {raw!r}")
            return BooleanValue(raw)
        case ListInput():
            if not isinstance(raw, str):
                raise ValueError(f"'{inp.name}' expects a choice symbol, got {raw!r}")
            return StringValue(raw)
        case MultiListInput():
            if not isinstance(raw, list) or not all(isinstance(s, str) for s in raw):
                raise ValueError(f"'{inp.name}' expects a list of choice symbols, got {raw!r}")
            return StringListValue(tuple(raw))
        case DateInput():
            if not isinstance(raw, str):
                raise ValueError(f"'{inp.name}' expects a yyyy-MM-dd date, got {raw!r}")
            try:
                return DateValue(date.fromisoformat(raw.strip()))
            except ValueError:
                raise ValueError(f"'{inp.name}' expects a yyyy-MM-dd date, got {raw!r}") from None
    raise TypeError(f"Unknown input type: {type(inp)}")


def values_from_mapping(script: Script, data: Mapping[str, object]) -> dict[str, IPFValue]:
    """Convert a JSON-typed mapping into bound values for ``script``.

    Raises InputValueError listing every malformed value.
    """
    values: dict[str, IPFValue] = {}
    problems: list[str] = []
    for name in data:
        if script.get_input(name) is None:
            logger.warning("Ignoring value for undeclared input '%s'", name)
    for inp in script.inputs:
        raw = data.get(inp.name)
        if raw is None:
            continue
        try:
            value = convert_value(inp, raw)
        except ValueError as e:
            problems.append(str(e))
            continue
        problem = validate_value(inp, value)
        if problem is not None:
            problems.append(problem)
            continue
        values[inp.name] = value
    if problems:
        raise InputValueError(problems)
    return values


def load_values(script: Script, path: str | Path) -> dict[str, IPFValue]:
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputValueError([f"{path}: invalid JSON: {e}"]) from e
    if not isinstance(data, dict):
        raise InputValueError([f"{path}: expected a JSON object keyed by input name"])
    return values_from_mapping(script, data)
