"""Analysis module for site KRI and QTL computations."""

from .exceptions import ValidationError
from .aggregation import (
    Aggregator,
    CountMode,
    CountSpec,
    EventTable,
    NullPolicy,
    event_indicators,
    parse_flag,
    subject_keys,
)
from .rates import (
    OverallStats,
    calculate_rate,
    add_rates,
    compute_overall_stats,
    compute_expected,
)
from .poisson import (
    KRIFlag,
    PoissonAnomalyDetector,
    signed_deviance,
    poisson_p_value,
    standardized_ratio,
    rate_confidence_interval,
    smr_confidence_interval,
    classify_flag,
    count_flagged,
)
from .qtl import QTLResult, QTLThresholdEngine
from .cumulative import build_cumulative_series, TIME_BUCKETS
from .demographics import summarize_demographics
from .kri import KRIResult, SiteKRIAnalyzer
from .export import KRIExporter

__all__ = [
    # Errors
    "ValidationError",
    # Aggregation
    "Aggregator",
    "CountMode",
    "CountSpec",
    "EventTable",
    "NullPolicy",
    "event_indicators",
    "parse_flag",
    "subject_keys",
    # Rates
    "OverallStats",
    "calculate_rate",
    "add_rates",
    "compute_overall_stats",
    "compute_expected",
    # Poisson
    "KRIFlag",
    "PoissonAnomalyDetector",
    "signed_deviance",
    "poisson_p_value",
    "standardized_ratio",
    "rate_confidence_interval",
    "smr_confidence_interval",
    "classify_flag",
    "count_flagged",
    # QTL
    "QTLResult",
    "QTLThresholdEngine",
    "build_cumulative_series",
    "TIME_BUCKETS",
    # Demographics
    "summarize_demographics",
    # Orchestration
    "KRIResult",
    "SiteKRIAnalyzer",
    # Export
    "KRIExporter",
]
