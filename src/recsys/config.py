from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from dotenv import load_dotenv


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


ConfigValue = Union[str, int, float, bool]

_TRUE_STRINGS = {"true"}
_FALSE_STRINGS = {"false"}


def parse_float(value: ConfigValue, *, name: str) -> float:
    """
    Parse a float argument the way the host passes it (usually a string).

    Raises:
        ConfigError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got boolean {value!r}.")
    try:
        parsed = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}.") from exc

    if not math.isfinite(parsed):
        raise ConfigError(f"{name} must be finite, got {value!r}.")
    return parsed


def parse_float32(value: ConfigValue, *, name: str) -> float:
    """
    Parse a float argument and round it to single precision.

    Link weights are 32-bit on the wire, so thresholds compared against
    them are held at the same width.

    Raises:
        ConfigError: If the value is not finite or does not fit in 32 bits.
    """
    parsed = parse_float(value, name=name)
    if abs(parsed) > np.finfo(np.float32).max:
        raise ConfigError(f"{name} is out of single-precision range, got {value!r}.")
    return float(np.float32(parsed))


def parse_int(value: ConfigValue, *, name: str, minimum: int | None = None) -> int:
    """
    Parse an integer argument. Floats with a fractional part are rejected.

    Raises:
        ConfigError: If the value is not an integer or is below `minimum`.
    """
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got boolean {value!r}.")
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigError(f"{name} must be an integer, got {value!r}.")
        parsed = int(value)
    else:
        try:
            parsed = int(value.strip() if isinstance(value, str) else value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name} must be an integer, got {value!r}.") from exc

    if minimum is not None and parsed < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {parsed}.")
    return parsed


def parse_bool(value: ConfigValue, *, name: str) -> bool:
    """
    Parse a boolean argument: "true"/"false", case-insensitive.

    Raises:
        ConfigError: For any other string or type.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ConfigError(f"{name} must be 'true' or 'false', got {value!r}.")


@dataclass(frozen=True)
class LinkFilterConfig:
    """
    Configuration for the item-item link filter.

    Attributes:
        min_link_weight: Aggregated links strictly below this weight are dropped.
        detailed: Also merge per-link signal maps.
    """
    min_link_weight: float
    detailed: bool = False

    @classmethod
    def from_args(cls, min_link_weight: ConfigValue, detailed: ConfigValue = False) -> "LinkFilterConfig":
        return cls(
            min_link_weight=parse_float32(min_link_weight, name="min_link_weight"),
            detailed=parse_bool(detailed, name="detailed"),
        )


@dataclass(frozen=True)
class RefinerConfig:
    """
    Configuration for the per-user recommendation refiner.

    Attributes:
        num_recs: Maximum number of recommendations kept per user.
        diversity_adjust: Down-weight candidates that share a reason.
    """
    num_recs: int
    diversity_adjust: bool = False

    @classmethod
    def from_args(cls, num_recs: ConfigValue, diversity_adjust: ConfigValue = False) -> "RefinerConfig":
        return cls(
            num_recs=parse_int(num_recs, name="num_recs", minimum=0),
            diversity_adjust=parse_bool(diversity_adjust, name="diversity_adjust"),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """
    Top-level configuration for a local pipeline run.

    Detailed mode is owned by `link_filter`; every stage reads it from there.
    """
    link_filter: LinkFilterConfig
    refiner: RefinerConfig

    @property
    def detailed(self) -> bool:
        return self.link_filter.detailed


def load_pipeline_config_from_env(
    prefix: str = "RECSYS_",
    dotenv_path: Optional[Path] = None,
) -> PipelineConfig:
    """
    Load pipeline configuration from environment variables (and a .env file).

    Reads {prefix}MIN_LINK_WEIGHT, {prefix}NUM_RECS, {prefix}DIVERSITY_ADJUST
    and {prefix}DETAILED. Missing variables fall back to defaults. Variables
    already set in the environment win over the .env file.

    Raises:
        ConfigError: If a variable is set to an unparsable value.
    """
    load_dotenv(dotenv_path)

    detailed = parse_bool(os.getenv(f"{prefix}DETAILED", "false"), name=f"{prefix}DETAILED")
    link_filter = LinkFilterConfig(
        min_link_weight=parse_float32(
            os.getenv(f"{prefix}MIN_LINK_WEIGHT", "1.0"),
            name=f"{prefix}MIN_LINK_WEIGHT",
        ),
        detailed=detailed,
    )
    refiner = RefinerConfig(
        num_recs=parse_int(os.getenv(f"{prefix}NUM_RECS", "20"), name=f"{prefix}NUM_RECS", minimum=0),
        diversity_adjust=parse_bool(
            os.getenv(f"{prefix}DIVERSITY_ADJUST", "false"),
            name=f"{prefix}DIVERSITY_ADJUST",
        ),
    )
    return PipelineConfig(link_filter=link_filter, refiner=refiner)
