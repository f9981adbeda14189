"""Environment-driven settings.

Values are read from the process environment after ``load_dotenv()``, so a
``.env`` file in the working directory can set them:

  IPFLANG_MAX_COMBINATIONS       combinations enumerated per fee (10000)
  IPFLANG_MAX_GAPS               gap records kept per fee (50)
  IPFLANG_SAMPLE_POINTS          extra interior samples per numeric input (0)
  IPFLANG_MULTILIST_SUBSET_SIZE  largest multilist subset enumerated (1)
  IPFLANG_LOG_LEVEL              logging level name for the CLI (WARNING)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .errors import Err, Ok, Result

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _int_setting(name: str, default: int, minimum: int) -> Result[int, ValueError]:
    raw = os.getenv(name)
    match raw:
        case None:
            return Ok(default)
        case str(text) if not text.strip():
            return Ok(default)
        case str(text):
            try:
                value = int(text.strip())
            except ValueError:
                return Err(ValueError(f"{name} must be an integer, got {text!r}"))
            if value < minimum:
                return Err(ValueError(f"{name} must be at least {minimum}, got {value}"))
            return Ok(value)


@dataclass(frozen=True)
class VerifierSettings:
    max_combinations: int = 10_000
    max_gaps: int = 50
    sample_points: int = 0
    multilist_subset_size: int = 1

    @classmethod
    def from_env(cls) -> Result[VerifierSettings, ValueError]:
        """Creates settings from IPFLANG_* variables, loading .env first."""
        load_dotenv()
        defaults = cls()
        values: dict[str, int] = {}
        for field_name, env_name, minimum in (
            ("max_combinations", "IPFLANG_MAX_COMBINATIONS", 1),
            ("max_gaps", "IPFLANG_MAX_GAPS", 0),
            ("sample_points", "IPFLANG_SAMPLE_POINTS", 0),
            ("multilist_subset_size", "IPFLANG_MULTILIST_SUBSET_SIZE", 0),
        ):
            match _int_setting(env_name, getattr(defaults, field_name), minimum):
                case Ok(value):
                    values[field_name] = value
                case Err(e):
                    return Err(e)
        return Ok(cls(**values))


def log_level_from_env() -> Result[int, ValueError]:
    load_dotenv()
    name = (os.getenv("IPFLANG_LOG_LEVEL") or "WARNING").strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        return Err(ValueError(f"IPFLANG_LOG_LEVEL is not a logging level: {name!r}"))
    return Ok(level)


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for the CLI. ``verbose`` forces DEBUG."""
    match log_level_from_env():
        case Ok(level):
            pass
        case Err(e):
            logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
            logging.getLogger(__name__).warning("%s; using WARNING", e)
            return
    logging.basicConfig(level=logging.DEBUG if verbose else level, format=LOG_FORMAT)
