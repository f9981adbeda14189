"""Exceptions raised by the IPFLang pipeline stages, and the Ok/Err result.

Library operations raise. Factories that read the environment (settings,
log level) and CLI helpers return ``Ok``/``Err`` instead so callers can
``match`` on the outcome. Verification findings (an incomplete or
non-monotonic fee) are neither; see ``ipflang.verification``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeAlias, TypeVar

if TYPE_CHECKING:
    from .check import Diagnostic


class IPFLangError(Exception):
    """Base class for every error raised by ipflang."""


class ParseError(IPFLangError):
    """Source text did not produce a usable script."""

    def __init__(self, diagnostics: Sequence[Diagnostic]):
        self.diagnostics = tuple(diagnostics)
        lines = "\n".join(f"  - {d}" for d in self.diagnostics)
        super().__init__(f"Script has {len(self.diagnostics)} error(s):\n{lines}")


class CompositionError(IPFLangError):
    """A jurisdiction chain could not be composed (cycle, dangling parent, type error)."""

    def __init__(self, problems: Sequence[str]):
        self.problems = tuple(problems)
        super().__init__("; ".join(self.problems))


class EvaluationError(IPFLangError):
    """A single compute call failed (division by zero, bad bound value, ...)."""


class InputValueError(IPFLangError):
    """Externally supplied input values are malformed."""

    def __init__(self, problems: Sequence[str]):
        self.problems = tuple(problems)
        super().__init__("; ".join(self.problems))


T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E


Result: TypeAlias = Ok[T] | Err[E]
