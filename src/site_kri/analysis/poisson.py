"""Exact Poisson anomaly detection for site KRIs.

Each group's observed count is compared with its expected count under the
pooled rate. The signed deviance

    G = sign(o - e) * sqrt(2 * (o * ln(o / e) - (o - e)))

drives the flag together with the direction of the SMR (o / e). p-values and
confidence intervals come straight from the Poisson and chi-squared
distributions, not a normal approximation.

Degenerate cases never raise: zero exposure gives a (0, 0) rate interval, and
zero expected gives statistic 0, p-value 1, NaN SMR and SMR interval, and the
flag "Within Expected Range".
"""

import math
from enum import Enum
from typing import Optional, Sequence, Tuple
import pandas as pd
from scipy import stats

from ..config.config_loader import FlagThresholds, get_flag_thresholds, get_confidence_level
from ..config.constants import (
    EXPOSURE_YEARS,
    EXPECTED_SUFFIX,
    STATISTIC_SUFFIX,
    P_VALUE_SUFFIX,
    SMR_SUFFIX,
    RATE_LOWER_SUFFIX,
    RATE_UPPER_SUFFIX,
    SMR_LOWER_SUFFIX,
    SMR_UPPER_SUFFIX,
    FLAG_SUFFIX,
    metric_column,
)
from ..config.logging_config import get_logger
from .exceptions import ValidationError

logger = get_logger("poisson")


class KRIFlag(str, Enum):
    """Site flag, ordered from most elevated to most reduced."""
    HIGH = "High"
    ELEVATED = "Elevated"
    WITHIN = "Within Expected Range"
    REDUCED = "Reduced"
    LOW = "Low"

    @property
    def is_flagged(self) -> bool:
        return self is not KRIFlag.WITHIN

    @property
    def severity(self) -> int:
        """2 for High/Low, 1 for Elevated/Reduced, 0 otherwise."""
        return {
            KRIFlag.HIGH: 2,
            KRIFlag.LOW: 2,
            KRIFlag.ELEVATED: 1,
            KRIFlag.REDUCED: 1,
        }.get(self, 0)


def signed_deviance(observed: float, expected: float) -> float:
    """Signed square root of the Poisson deviance of observed vs expected."""
    o = float(observed)
    e = float(expected)
    if e <= 0:
        return 0.0
    term = o * math.log(o / e) if o > 0 else 0.0
    deviance = max(2.0 * (term - (o - e)), 0.0)
    if o == e or deviance == 0.0:
        return 0.0
    return math.copysign(math.sqrt(deviance), o - e)


def poisson_p_value(observed: float, expected: float) -> float:
    """
    Exact Poisson tail probability in the direction of the deviation.

    P(X <= o) when o <= e, else P(X >= o), with X ~ Poisson(e).
    """
    o = float(observed)
    e = float(expected)
    if e <= 0:
        return 1.0
    if o <= e:
        return float(stats.poisson.cdf(o, e))
    return float(stats.poisson.sf(o - 1, e))


def standardized_ratio(observed: float, expected: float) -> float:
    """SMR = observed / expected; NaN when nothing is expected."""
    if expected <= 0:
        return math.nan
    return float(observed) / float(expected)


def rate_confidence_interval(
    observed: float,
    exposure_years: float,
    confidence: float = 0.95,
) -> Tuple[float, float]:
    """
    Exact interval for a rate from Poisson quantiles of the observed count.

    Returns:
        (lower, upper) in events per person-year; (0, 0) without exposure.
    """
    if exposure_years <= 0 or observed <= 0:
        return (0.0, 0.0)
    alpha = (1 - confidence) / 2
    lower = stats.poisson.ppf(alpha, observed) / exposure_years
    upper = stats.poisson.ppf(1 - alpha, observed) / exposure_years
    return (float(lower), float(upper))


def smr_confidence_interval(
    observed: float,
    expected: float,
    confidence: float = 0.95,
) -> Tuple[float, float]:
    """
    Exact interval for the SMR via the chi-squared / Poisson relationship.

    lower = chi2(alpha, 2o) / 2 / e, upper = chi2(1 - alpha, 2(o + 1)) / 2 / e.
    """
    if expected <= 0:
        return (math.nan, math.nan)
    alpha = (1 - confidence) / 2
    o = float(observed)
    lower = stats.chi2.ppf(alpha, 2 * o) / 2 / expected if o > 0 else 0.0
    upper = stats.chi2.ppf(1 - alpha, 2 * (o + 1)) / 2 / expected
    return (float(lower), float(upper))


def classify_flag(
    statistic: float,
    smr: float,
    thresholds: Optional[FlagThresholds] = None,
) -> KRIFlag:
    """
    Flag a group from its signed deviance and SMR.

    High/Low thresholds are checked before Elevated/Reduced; a NaN SMR is
    always Within Expected Range.
    """
    thresholds = thresholds or get_flag_thresholds()
    magnitude = abs(statistic)

    if magnitude > thresholds.high and smr > 1:
        return KRIFlag.HIGH
    if magnitude > thresholds.high and smr < 1:
        return KRIFlag.LOW
    if magnitude > thresholds.elevated and smr > 1:
        return KRIFlag.ELEVATED
    if magnitude > thresholds.elevated and smr < 1:
        return KRIFlag.REDUCED
    return KRIFlag.WITHIN


class PoissonAnomalyDetector:
    """Adds test statistics, p-values, intervals and flags to a summary table."""

    def __init__(
        self,
        thresholds: Optional[FlagThresholds] = None,
        confidence_level: Optional[float] = None,
    ):
        """
        Initialize the detector.

        Args:
            thresholds: Flag thresholds (from kri_thresholds.yaml if None).
            confidence_level: Interval confidence level (from config if None).
        """
        self.thresholds = thresholds or get_flag_thresholds()
        self.confidence_level = confidence_level or get_confidence_level()

    def detect(
        self,
        summary: pd.DataFrame,
        metrics: Sequence[str],
        exposure_column: str = EXPOSURE_YEARS,
    ) -> pd.DataFrame:
        """
        Compute statistics and flags for each metric.

        Args:
            summary: Table with `<metric>` and `<metric>_expected` columns.
            metrics: Metrics to test.
            exposure_column: Person-years column used for the rate interval.

        Returns:
            Copy of summary with statistic, p_value, smr, rate/SMR interval
            bounds and flag columns added per metric.
        """
        result = summary.copy()

        for metric in metrics:
            expected_col = metric_column(metric, EXPECTED_SUFFIX)
            missing = [c for c in (metric, expected_col, exposure_column) if c not in result.columns]
            if missing:
                raise ValidationError(
                    f"Cannot test '{metric}': missing column(s) {', '.join(missing)}",
                    column=missing[0],
                )

            rows = list(zip(
                result[metric].astype(float),
                result[expected_col].astype(float),
                result[exposure_column].astype(float),
            ))

            statistics = [signed_deviance(o, e) for o, e, _ in rows]
            smrs = [standardized_ratio(o, e) for o, e, _ in rows]
            rate_cis = [rate_confidence_interval(o, t, self.confidence_level) for o, _, t in rows]
            smr_cis = [smr_confidence_interval(o, e, self.confidence_level) for o, e, _ in rows]

            result[metric_column(metric, STATISTIC_SUFFIX)] = statistics
            result[metric_column(metric, P_VALUE_SUFFIX)] = [poisson_p_value(o, e) for o, e, _ in rows]
            result[metric_column(metric, SMR_SUFFIX)] = smrs
            result[metric_column(metric, RATE_LOWER_SUFFIX)] = [ci[0] for ci in rate_cis]
            result[metric_column(metric, RATE_UPPER_SUFFIX)] = [ci[1] for ci in rate_cis]
            result[metric_column(metric, SMR_LOWER_SUFFIX)] = [ci[0] for ci in smr_cis]
            result[metric_column(metric, SMR_UPPER_SUFFIX)] = [ci[1] for ci in smr_cis]
            result[metric_column(metric, FLAG_SUFFIX)] = [
                classify_flag(g, smr, self.thresholds).value for g, smr in zip(statistics, smrs)
            ]

            logger.info(
                f"{metric}: {count_flagged(result, metric)} of {len(result)} groups flagged"
            )

        return result


def count_flagged(summary: pd.DataFrame, metric: str) -> int:
    """Number of groups whose flag for metric is anything but Within Expected Range."""
    flags = summary[metric_column(metric, FLAG_SUFFIX)]
    return int((flags != KRIFlag.WITHIN.value).sum())
