"""Per-group rates, pooled rates and expected counts.

The pooled rate is a reduce over every group and must be complete before any
group's expected count is computed; `compute_overall_stats` is that barrier
and `compute_expected` only ever sees the finished `OverallStats`.
"""

from dataclasses import dataclass, field
from typing import Dict, Sequence
import pandas as pd
import numpy as np

from ..config.constants import (
    SUBJECT_COUNT,
    EXPOSURE_YEARS,
    RATE_SUFFIX,
    EXPECTED_SUFFIX,
    metric_column,
)
from ..config.logging_config import get_logger
from .exceptions import ValidationError

logger = get_logger("rates")


def calculate_rate(count: float, exposure_years: float) -> float:
    """Events per person-year; 0 when there is no exposure."""
    if exposure_years <= 0:
        return 0.0
    return float(count) / float(exposure_years)


def _safe_divide(numerator: pd.Series, denominator: pd.Series) -> np.ndarray:
    num = numerator.to_numpy(dtype=float)
    den = denominator.to_numpy(dtype=float)
    return np.divide(num, den, out=np.zeros_like(num), where=den > 0)


def add_rates(
    summary: pd.DataFrame,
    metrics: Sequence[str],
    exposure_column: str = EXPOSURE_YEARS,
) -> pd.DataFrame:
    """
    Add a `<metric>_rate` column per metric.

    Args:
        summary: Aggregator output.
        metrics: Count columns to turn into rates.
        exposure_column: Person-years column.

    Returns:
        Copy of summary with rate columns added.
    """
    _check_columns(summary, list(metrics) + [exposure_column])
    result = summary.copy()
    for metric in metrics:
        result[metric_column(metric, RATE_SUFFIX)] = _safe_divide(
            result[metric], result[exposure_column]
        )
    return result


@dataclass(frozen=True)
class OverallStats:
    """Pooled totals and rates across every group of one analysis run."""

    groups: int
    total_subjects: int
    total_exposure_years: float
    totals: Dict[str, int] = field(default_factory=dict)
    rates: Dict[str, float] = field(default_factory=dict)

    def rate(self, metric: str) -> float:
        """Pooled rate for a metric."""
        try:
            return self.rates[metric]
        except KeyError:
            raise KeyError(f"No pooled rate for metric '{metric}'") from None

    def to_frame(self) -> pd.DataFrame:
        """One row per metric, for reporting."""
        return pd.DataFrame([
            {
                "metric": metric,
                "total_events": self.totals[metric],
                "total_exposure_years": self.total_exposure_years,
                "total_subjects": self.total_subjects,
                "groups": self.groups,
                "pooled_rate": self.rates[metric],
            }
            for metric in self.totals
        ])


def compute_overall_stats(
    summary: pd.DataFrame,
    metrics: Sequence[str],
    exposure_column: str = EXPOSURE_YEARS,
) -> OverallStats:
    """
    Pool counts and exposure across all groups.

    pooled_rate = sum(counts) / sum(exposure_years), or 0 without exposure.
    """
    _check_columns(summary, list(metrics) + [exposure_column])
    total_exposure = float(summary[exposure_column].sum())
    totals = {metric: int(summary[metric].sum()) for metric in metrics}
    rates = {metric: calculate_rate(totals[metric], total_exposure) for metric in metrics}
    total_subjects = int(summary[SUBJECT_COUNT].sum()) if SUBJECT_COUNT in summary.columns else 0

    for metric in metrics:
        logger.info(
            f"Pooled {metric}: {totals[metric]} events / {total_exposure:.2f} "
            f"person-years = {rates[metric]:.4f}"
        )

    return OverallStats(
        groups=len(summary),
        total_subjects=total_subjects,
        total_exposure_years=total_exposure,
        totals=totals,
        rates=rates,
    )


def compute_expected(
    summary: pd.DataFrame,
    overall: OverallStats,
    metrics: Sequence[str],
    exposure_column: str = EXPOSURE_YEARS,
) -> pd.DataFrame:
    """
    Add `<metric>_expected` = pooled rate x group exposure.

    Returns:
        Copy of summary with expected-count columns added.
    """
    _check_columns(summary, [exposure_column])
    result = summary.copy()
    exposure = result[exposure_column].to_numpy(dtype=float)
    for metric in metrics:
        result[metric_column(metric, EXPECTED_SUFFIX)] = overall.rate(metric) * exposure
    return result


def _check_columns(summary: pd.DataFrame, columns: Sequence[str]) -> None:
    missing = [c for c in columns if c not in summary.columns]
    if missing:
        raise ValidationError(
            f"Summary table is missing column(s): {', '.join(missing)}",
            column=missing[0],
        )
    for column in columns:
        if not pd.api.types.is_numeric_dtype(summary[column]):
            raise ValidationError(f"Column '{column}' must be numeric", column=column)
