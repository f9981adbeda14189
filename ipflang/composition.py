"""Jurisdiction inheritance: merging a chain of scripts into one.

A jurisdiction wraps a parsed script and optionally names a parent. Composing
a target walks its parent chain to the root and merges root-to-target:

  - Inputs, fees, groups and returns are keyed by name (returns by symbol).
  - A descendant declaration replaces the ancestor's one wholesale, in the
    ancestor's position.
  - Names first introduced by a descendant are appended after everything
    inherited, in the descendant's declaration order.

Registered scripts are never modified; every compose builds a new Script.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TypeVar

from .check import check_script
from .errors import CompositionError
from .script import Script

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Jurisdiction:
    id: str
    name: str
    script: Script
    parent_id: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)


class JurisdictionRegistry:
    """Id -> Jurisdiction. Parent links are only resolved at compose time."""

    def __init__(self, jurisdictions: Sequence[Jurisdiction] = ()):
        self._entries: dict[str, Jurisdiction] = {}
        for j in jurisdictions:
            self.register(j)

    def register(self, jurisdiction: Jurisdiction) -> None:
        if jurisdiction.id in self._entries:
            logger.info("Replacing registered jurisdiction '%s'", jurisdiction.id)
        self._entries[jurisdiction.id] = jurisdiction

    def get(self, jurisdiction_id: str) -> Jurisdiction | None:
        return self._entries.get(jurisdiction_id)

    def __contains__(self, jurisdiction_id: object) -> bool:
        return jurisdiction_id in self._entries

    def __iter__(self) -> Iterator[Jurisdiction]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class ComposedJurisdiction:
    script: Script
    applied_jurisdictions: tuple[str, ...]


@dataclass(frozen=True)
class InheritanceAnalysis:
    jurisdiction_id: str
    inherited_fees: tuple[str, ...]
    overridden_fees: tuple[str, ...]
    defined_fees: tuple[str, ...]
    inherited_inputs: tuple[str, ...]
    overridden_inputs: tuple[str, ...]
    defined_inputs: tuple[str, ...]

    @property
    def reuse_percentage(self) -> Decimal:
        """Share of inherited names across the combined fee and input population."""
        inherited = len(self.inherited_fees) + len(self.inherited_inputs)
        total = (
            inherited
            + len(self.overridden_fees)
            + len(self.overridden_inputs)
            + len(self.defined_fees)
            + len(self.defined_inputs)
        )
        return _percentage(inherited, total)

    @property
    def fee_reuse_percentage(self) -> Decimal:
        total = len(self.inherited_fees) + len(self.overridden_fees) + len(self.defined_fees)
        return _percentage(len(self.inherited_fees), total)


@dataclass(frozen=True)
class CompositionMetrics:
    total_jurisdictions: int
    jurisdictions_with_inheritance: int
    total_inherited_fees: int
    total_overridden_fees: int
    total_defined_fees: int

    @property
    def inheritance_percentage(self) -> Decimal:
        return _percentage(self.jurisdictions_with_inheritance, self.total_jurisdictions)

    @property
    def reuse_percentage(self) -> Decimal:
        total = self.total_inherited_fees + self.total_overridden_fees + self.total_defined_fees
        return _percentage(self.total_inherited_fees, total)


def _percentage(part: int, whole: int) -> Decimal:
    if whole == 0:
        return Decimal(0)
    return (Decimal(100) * part / whole).quantize(Decimal("0.01"))


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def merge_by_name(
    inherited: Sequence[T], declared: Sequence[T], key: Callable[[T], str]
) -> tuple[T, ...]:
    """Override ``inherited`` entries in place, then append new ``declared`` ones."""
    overrides = {key(d): d for d in declared}
    merged = [overrides.get(key(i), i) for i in inherited]
    seen = {key(i) for i in inherited}
    merged.extend(d for d in declared if key(d) not in seen)
    return tuple(merged)


def merge_scripts(parent: Script, child: Script) -> Script:
    verifications = list(parent.verifications)
    verifications.extend(v for v in child.verifications if v not in verifications)
    return Script(
        inputs=merge_by_name(parent.inputs, child.inputs, lambda i: i.name),
        fees=merge_by_name(parent.fees, child.fees, lambda f: f.name),
        groups=merge_by_name(parent.groups, child.groups, lambda g: g.name),
        returns=merge_by_name(parent.returns, child.returns, lambda r: r.symbol),
        verifications=tuple(verifications),
        version=child.version if child.version is not None else parent.version,
    )


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------


class JurisdictionComposer:
    def __init__(self, registry: JurisdictionRegistry):
        self.registry = registry

    def chain(self, target_id: str) -> list[Jurisdiction]:
        """Root-to-target list of jurisdictions; raises CompositionError."""
        problems: list[str] = []
        chain: list[Jurisdiction] = []
        visited: set[str] = set()
        current: str | None = target_id
        child: str | None = None
        while current is not None:
            if current in visited:
                cycle = " -> ".join([j.id for j in chain] + [current])
                problems.append(f"Cycle in parent links: {cycle}")
                break
            j = self.registry.get(current)
            if j is None:
                if child is None:
                    problems.append(f"Jurisdiction '{current}' is not registered")
                else:
                    problems.append(
                        f"Jurisdiction '{child}' names unregistered parent '{current}'"
                    )
                break
            visited.add(current)
            chain.append(j)
            child, current = current, j.parent_id
        if problems:
            raise CompositionError(problems)
        chain.reverse()
        return chain

    def _merged(self, chain: Sequence[Jurisdiction]) -> Script:
        script = Script()
        for j in chain:
            script = merge_scripts(script, j.script)
        return script

    def compose(self, target_id: str) -> ComposedJurisdiction:
        chain = self.chain(target_id)
        if len(chain) == 1:
            # A lone root is returned as registered.
            script = chain[0].script
        else:
            script = self._merged(chain)
            result = check_script(script)
            if not result.is_well_formed:
                raise CompositionError(
                    [f"Composed script for '{target_id}': {d}" for d in result.errors]
                )
        applied = tuple(j.id for j in chain)
        logger.debug("Composed %s from %s", target_id, " -> ".join(applied))
        return ComposedJurisdiction(script, applied)

    def analyze_inheritance(self, jurisdiction_id: str) -> InheritanceAnalysis:
        chain = self.chain(jurisdiction_id)
        own = chain[-1].script
        ancestors = self._merged(chain[:-1])

        def split(inherited: tuple[str, ...], declared: tuple[str, ...]):
            return (
                tuple(n for n in inherited if n not in declared),
                tuple(n for n in declared if n in inherited),
                tuple(n for n in declared if n not in inherited),
            )

        fees = split(ancestors.fee_names, own.fee_names)
        inputs = split(ancestors.input_names, own.input_names)
        return InheritanceAnalysis(jurisdiction_id, *fees, *inputs)

    def calculate_metrics(self) -> CompositionMetrics:
        analyses = [self.analyze_inheritance(j.id) for j in self.registry]
        return CompositionMetrics(
            total_jurisdictions=len(self.registry),
            jurisdictions_with_inheritance=sum(
                1 for j in self.registry if j.parent_id is not None
            ),
            total_inherited_fees=sum(len(a.inherited_fees) for a in analyses),
            total_overridden_fees=sum(len(a.overridden_fees) for a in analyses),
            total_defined_fees=sum(len(a.defined_fees) for a in analyses),
        )


def compose_files(
    scripts: Sequence[tuple[str, Script]],
    sources: Sequence[str] = (),
) -> tuple[JurisdictionComposer, ComposedJurisdiction]:
    """Register ``(id, script)`` pairs as a linear chain and compose the last.

    Each script's parent is the one before it; the first is the root.
    ``sources`` optionally names the file each script came from.
    """
    if not scripts:
        raise CompositionError(["At least one script is required"])
    registry = JurisdictionRegistry()
    previous: str | None = None
    for level, (jid, script) in enumerate(scripts):
        name = script.version.description if script.version and script.version.description else jid
        registry.register(
            Jurisdiction(jid, name, script, previous, _metadata(level, sources))
        )
        previous = jid
    composer = JurisdictionComposer(registry)
    return composer, composer.compose(scripts[-1][0])


def _metadata(level: int, sources: Sequence[str]) -> dict[str, str]:
    metadata = {"level": str(level)}
    if level < len(sources):
        metadata["file_path"] = sources[level]
    return metadata
