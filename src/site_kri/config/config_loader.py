"""YAML configuration loader for Site KRI thresholds.

Loads and caches the threshold file with fallback to defaults and exposes
validated, immutable accessors for the flag and QTL settings.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass
from functools import lru_cache
import yaml

from .settings import config


class ConfigurationError(Exception):
    """Raised when configuration loading or access fails."""

    pass


DEFAULT_THRESHOLDS: Dict[str, Any] = {
    "flags": {"high": 3.0, "elevated": 2.0},
    "confidence_level": 0.95,
    "qtl": {"percentiles": {"lower": 10, "secondary": 45, "upper": 90}},
}


def _load_yaml_file(filepath: Path) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filepath: Path to the YAML file

    Returns:
        Parsed YAML content as dictionary

    Raises:
        ConfigurationError: If file cannot be loaded
    """
    if not filepath.exists():
        raise FileNotFoundError(filepath)

    try:
        with open(filepath, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing {filepath.name}: {e}")
    except IOError as e:
        raise ConfigurationError(f"Error reading {filepath.name}: {e}")

    if not isinstance(content, dict):
        raise ConfigurationError(f"{filepath.name} must contain a mapping at top level")
    return content


@lru_cache(maxsize=4)
def load_thresholds(filepath: Optional[Path] = None) -> Dict[str, Any]:
    """Load the threshold file, falling back to defaults when it is absent."""
    filepath = filepath or config.analysis.thresholds_file
    try:
        return _load_yaml_file(Path(filepath))
    except FileNotFoundError:
        return DEFAULT_THRESHOLDS


def clear_config_cache() -> None:
    """Clear all cached configuration data."""
    load_thresholds.cache_clear()


@dataclass(frozen=True)
class FlagThresholds:
    """Signed-deviance magnitudes separating the KRI flag levels."""

    high: float = 3.0
    elevated: float = 2.0

    def __post_init__(self):
        if not 0 < self.elevated < self.high:
            raise ConfigurationError(
                f"Flag thresholds must satisfy 0 < elevated < high "
                f"(elevated={self.elevated}, high={self.high})"
            )


@dataclass(frozen=True)
class QTLPercentiles:
    """Percentile points (0-100) for the lower, secondary and upper QTL limits."""

    lower: float = 10
    secondary: float = 45
    upper: float = 90

    def __post_init__(self):
        if not 0 <= self.lower < self.secondary < self.upper <= 100:
            raise ConfigurationError(
                f"QTL percentiles must satisfy 0 <= lower < secondary < upper <= 100 "
                f"(lower={self.lower}, secondary={self.secondary}, upper={self.upper})"
            )

    @property
    def quantiles(self) -> Tuple[float, float, float]:
        """Percentiles as fractions for pandas quantile()."""
        return (self.lower / 100, self.secondary / 100, self.upper / 100)

    @property
    def secondary_label(self) -> str:
        """Band label for values between the secondary and upper limits."""
        return f"Above {_ordinal(self.secondary)} Percentile"


def _ordinal(value: float) -> str:
    number = int(value) if float(value).is_integer() else value
    if isinstance(number, float):
        return f"{number}th"
    if 10 <= number % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")
    return f"{number}{suffix}"


def _section(name: str) -> Dict[str, Any]:
    section = load_thresholds().get(name, DEFAULT_THRESHOLDS[name])
    if not isinstance(section, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping")
    return section


def get_flag_thresholds() -> FlagThresholds:
    """Get KRI flag thresholds."""
    flags = _section("flags")
    return FlagThresholds(
        high=float(flags.get("high", 3.0)),
        elevated=float(flags.get("elevated", 2.0)),
    )


def get_qtl_percentiles() -> QTLPercentiles:
    """Get QTL percentile configuration."""
    percentiles = _section("qtl").get("percentiles", {})
    return QTLPercentiles(
        lower=float(percentiles.get("lower", 10)),
        secondary=float(percentiles.get("secondary", 45)),
        upper=float(percentiles.get("upper", 90)),
    )


def get_confidence_level() -> float:
    """Get the confidence level used for exact Poisson intervals."""
    level = float(load_thresholds().get("confidence_level", 0.95))
    if not 0 < level < 1:
        raise ConfigurationError(f"confidence_level must be in (0, 1), got {level}")
    return level
