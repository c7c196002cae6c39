"""Site KRI and QTL analyses.

`SiteKRIAnalyzer` runs the full pipeline:

    aggregate -> rates -> overall stats (pooled) -> expected -> Poisson tests/flags

and the QTL analyses on top of it, static (per-site rates) and cumulative
(deviations over time, withdrawals over enrollment).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import pandas as pd

from ..config.config_loader import FlagThresholds, QTLPercentiles
from ..config.constants import (
    SUBJECT_ID,
    SITE_ID,
    TIME_ON_STUDY,
    ENROLLMENT_DATE,
    DEVIATION_DATE,
    DEVIATION_IMPORTANT,
    AE_SERIOUS,
    WITHDRAWAL,
    RATE_SUFFIX,
    FLAG_SUFFIX,
    CUMULATIVE_RATE,
    metric_column,
)
from ..config.logging_config import get_logger
from .aggregation import (
    Aggregator,
    CountMode,
    CountSpec,
    EventTable,
    NullPolicy,
    event_indicators,
    require_columns,
    subject_keys,
)
from .cumulative import build_cumulative_series
from .poisson import KRIFlag, PoissonAnomalyDetector, count_flagged
from .qtl import QTLResult, QTLThresholdEngine
from .rates import OverallStats, add_rates, compute_expected, compute_overall_stats

logger = get_logger("kri")


@dataclass
class KRIResult:
    """Flagged per-site summary plus the pooled stats it was tested against."""

    summary: pd.DataFrame
    overall: OverallStats
    metrics: List[str] = field(default_factory=list)
    flag_counts: Dict[str, int] = field(default_factory=dict)
    group_column: str = SITE_ID

    def flagged(self, metric: str) -> pd.DataFrame:
        """Rows whose flag for metric is not Within Expected Range."""
        flags = self.summary[metric_column(metric, FLAG_SUFFIX)]
        return self.summary[flags != KRIFlag.WITHIN.value]


class SiteKRIAnalyzer:
    """Computes site KRIs and QTL bands for a study."""

    def __init__(
        self,
        group_column: str = SITE_ID,
        subject_column: str = SUBJECT_ID,
        exposure_column: str = TIME_ON_STUDY,
        exposure_null_policy: NullPolicy = NullPolicy.ZERO,
        thresholds: Optional[FlagThresholds] = None,
        confidence_level: Optional[float] = None,
        percentiles: Optional[QTLPercentiles] = None,
        days_per_year: Optional[float] = None,
    ):
        """
        Initialize the analyzer.

        Args:
            group_column: Subject column to group by (site).
            subject_column: Subject identifier shared by all tables.
            exposure_column: Time on study in days.
            exposure_null_policy: Treatment of missing time on study.
            thresholds: Flag thresholds (config file if None).
            confidence_level: Interval confidence level (config file if None).
            percentiles: QTL percentiles (config file if None).
            days_per_year: Days per person-year (settings if None).
        """
        self.group_column = group_column
        self.subject_column = subject_column
        self.aggregator = Aggregator(
            group_column=group_column,
            subject_column=subject_column,
            exposure_column=exposure_column,
            exposure_null_policy=exposure_null_policy,
            days_per_year=days_per_year,
        )
        self.detector = PoissonAnomalyDetector(thresholds, confidence_level)
        self.percentiles = percentiles

    def analyze(
        self,
        subjects: pd.DataFrame,
        event_tables: Sequence[EventTable],
    ) -> KRIResult:
        """
        Run the KRI pipeline for every count of every event table.

        Returns:
            KRIResult with the flagged summary, pooled stats and flag counts.
        """
        summary = self.aggregator.aggregate(subjects, event_tables)
        metrics = [name for table in event_tables for name in table.metrics]

        summary = add_rates(summary, metrics)
        overall = compute_overall_stats(summary, metrics)
        summary = compute_expected(summary, overall, metrics)
        summary = self.detector.detect(summary, metrics)

        flag_counts = {metric: count_flagged(summary, metric) for metric in metrics}
        return KRIResult(
            summary=summary,
            overall=overall,
            metrics=metrics,
            flag_counts=flag_counts,
            group_column=self.group_column,
        )

    def deviation_kri(
        self,
        subjects: pd.DataFrame,
        deviations: pd.DataFrame,
        date_column: str = DEVIATION_DATE,
        important_column: str = DEVIATION_IMPORTANT,
    ) -> KRIResult:
        """KRIs for all deviations (dated rows) and important deviations."""
        table = EventTable(
            name="deviations",
            data=deviations,
            counts=[
                CountSpec("deviations", date_column, CountMode.PRESENT),
                CountSpec("important_deviations", important_column, CountMode.TRUE),
            ],
            subject_column=self.subject_column,
        )
        return self.analyze(subjects, [table])

    def adverse_event_kri(
        self,
        subjects: pd.DataFrame,
        adverse_events: pd.DataFrame,
        serious_column: str = AE_SERIOUS,
    ) -> KRIResult:
        """KRIs for all adverse events and serious adverse events."""
        table = EventTable(
            name="adverse_events",
            data=adverse_events,
            counts=[
                CountSpec("adverse_events", mode=CountMode.ROW),
                CountSpec("serious_adverse_events", serious_column, CountMode.TRUE),
            ],
            subject_column=self.subject_column,
        )
        return self.analyze(subjects, [table])

    def qtl_engine(self, metric: str) -> QTLThresholdEngine:
        return QTLThresholdEngine(metric, self.percentiles)

    def site_rate_qtl(self, result: KRIResult, metric: str) -> QTLResult:
        """QTL bands over the per-site rate of one KRI metric."""
        return self.qtl_engine(metric_column(metric, RATE_SUFFIX)).evaluate(result.summary)

    def deviation_qtl(
        self,
        deviations: pd.DataFrame,
        date_column: str = DEVIATION_DATE,
        freq: Optional[str] = "month",
    ) -> QTLResult:
        """
        QTL bands over the cumulative deviations-per-participant series.

        Time points are deviation dates (bucketed by freq); participants are
        the distinct subjects with a deviation at that time point.
        """
        require_columns(deviations, [self.subject_column, date_column], "deviations")
        series = build_cumulative_series(
            deviations,
            time_column=date_column,
            subject_column=self.subject_column,
            freq=freq,
        )
        return self.qtl_engine(CUMULATIVE_RATE).evaluate(series)

    def withdrawal_qtl(
        self,
        subjects: pd.DataFrame,
        withdrawals: pd.DataFrame,
        time_column: str = ENROLLMENT_DATE,
        withdrawal_column: str = WITHDRAWAL,
        freq: Optional[str] = "month",
    ) -> QTLResult:
        """
        QTL bands over the cumulative withdrawal rate by enrollment time.

        Every subject counts as a participant at its enrollment time point;
        a subject counts as withdrawn if any of its rows has a true flag.
        """
        require_columns(subjects, [self.subject_column, time_column], "subjects")
        table = EventTable(
            name="withdrawals",
            data=withdrawals,
            counts=[CountSpec("withdrawn", withdrawal_column, CountMode.TRUE)],
            subject_column=self.subject_column,
        )
        require_columns(withdrawals, [self.subject_column, withdrawal_column], table.name)

        indicators = event_indicators(table)
        indicators[self.subject_column] = subject_keys(indicators[self.subject_column])
        per_subject = (
            indicators
            .dropna(subset=[self.subject_column])
            .groupby(self.subject_column, as_index=False)["withdrawn"]
            .max()
        )

        timeline = subjects[[self.subject_column, time_column]].copy()
        timeline[self.subject_column] = subject_keys(timeline[self.subject_column])
        timeline = timeline.merge(per_subject, on=self.subject_column, how="left")
        timeline["withdrawn"] = timeline["withdrawn"].fillna(0).astype("int64")

        series = build_cumulative_series(
            timeline,
            time_column=time_column,
            count_column="withdrawn",
            subject_column=self.subject_column,
            freq=freq,
        )
        return self.qtl_engine(CUMULATIVE_RATE).evaluate(series)
