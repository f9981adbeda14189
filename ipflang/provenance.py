"""Audit-trail records produced by ``Evaluation.compute_with_provenance``.

Provenance keeps every case that was considered for every fee, not just the
one that fired, so a reviewer can see why a total came out the way it did.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from .values import IPFValue

_NO_VALUES: Mapping[str, IPFValue] = MappingProxyType({})


@dataclass(frozen=True)
class ProvenanceRecord:
    """One YIELD case of a fee as seen during an evaluation.

    ``condition_result`` is None for unconditional cases and for cases after
    the one that fired, which are never evaluated.
    """

    expression: str
    condition: str | None
    condition_result: bool | None
    did_contribute: bool
    contribution: Decimal = Decimal(0)

    def __str__(self) -> str:
        if self.condition is None:
            return f"YIELD {self.expression}"
        return f"YIELD {self.expression} IF {self.condition}"


@dataclass(frozen=True)
class FeeProvenance:
    fee_name: str
    is_optional: bool
    total_amount: Decimal
    records: tuple[ProvenanceRecord, ...]
    variables: Mapping[str, str] = field(default_factory=dict)
    currency: str | None = None

    @property
    def fired(self) -> ProvenanceRecord | None:
        for r in self.records:
            if r.did_contribute:
                return r
        return None


@dataclass(frozen=True)
class Counterfactual:
    """The grand total obtained by changing exactly one input.

    ``difference`` is ``alternative_total - actual grand total``; a positive
    difference means the alternative would cost more.
    """

    input_name: str
    original_value: IPFValue
    alternative_value: IPFValue
    alternative_total: Decimal
    difference: Decimal

    def __str__(self) -> str:
        sign = "+" if self.difference >= 0 else ""
        return (
            f"If {self.input_name} were {self.alternative_value} "
            f"instead of {self.original_value}: {self.alternative_total} ({sign}{self.difference})"
        )


@dataclass(frozen=True)
class ComputationProvenance:
    total_mandatory: Decimal
    total_optional: Decimal
    fee_provenances: tuple[FeeProvenance, ...]
    input_values: Mapping[str, IPFValue] = field(default_factory=lambda: _NO_VALUES)
    counterfactuals: tuple[Counterfactual, ...] = ()

    @property
    def grand_total(self) -> Decimal:
        return self.total_mandatory + self.total_optional

    def get_fee(self, name: str) -> FeeProvenance | None:
        for f in self.fee_provenances:
            if f.fee_name == name:
                return f
        return None
