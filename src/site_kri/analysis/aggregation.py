"""Subject/event aggregation into per-site summary rows."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence
import pandas as pd
import numpy as np

from ..config import config
from ..config.constants import (
    SUBJECT_ID,
    SITE_ID,
    TIME_ON_STUDY,
    SUBJECT_COUNT,
    EXPOSURE_YEARS,
    TRUE_FLAG_VALUES,
    FALSE_FLAG_VALUES,
)
from ..config.logging_config import get_logger
from ..database import get_connection
from .exceptions import ValidationError

logger = get_logger("aggregation")


class NullPolicy(Enum):
    """How an aggregate treats a missing value."""
    ZERO = "zero"
    EXCLUDE = "exclude"
    RAISE = "raise"


class CountMode(Enum):
    """Which event rows qualify for a count."""
    ROW = "row"  # every row counts
    PRESENT = "present"  # column value is non-null
    TRUE = "true"  # column holds a true flag


@dataclass(frozen=True)
class CountSpec:
    """A named event count taken from one column of an event table."""

    name: str
    column: Optional[str] = None
    mode: CountMode = CountMode.PRESENT
    null_policy: NullPolicy = NullPolicy.EXCLUDE

    def __post_init__(self):
        if self.mode != CountMode.ROW and self.column is None:
            raise ValueError(f"Count '{self.name}' needs a column for mode {self.mode.value}")


@dataclass
class EventTable:
    """An event table and the counts to take from it."""

    name: str
    data: pd.DataFrame
    counts: List[CountSpec] = field(default_factory=list)
    subject_column: str = SUBJECT_ID

    def __post_init__(self):
        if not self.counts:
            raise ValueError(f"Event table '{self.name}' defines no counts")

    @property
    def metrics(self) -> List[str]:
        return [spec.name for spec in self.counts]


def require_columns(df: pd.DataFrame, columns: Iterable[str], table: str) -> None:
    """Raise ValidationError if any of the columns is missing from df."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValidationError(
            f"Table '{table}' is missing required column(s): {', '.join(missing)}",
            column=missing[0],
            details={"table": table, "missing": missing},
        )


def parse_flag(series: pd.Series, column: str) -> pd.Series:
    """
    Normalize a flag column to a nullable boolean Series.

    Accepts booleans, 1/0 and Y/N, Yes/No, True/False strings (any case).

    Raises:
        ValidationError: If a value is not a recognised flag.
    """
    normalized = series.map(lambda v: v if pd.isna(v) else str(v).strip().upper())
    unknown = set(normalized.dropna()) - TRUE_FLAG_VALUES - FALSE_FLAG_VALUES
    if unknown:
        raise ValidationError(
            f"Column '{column}' has unrecognised flag values: {sorted(unknown)[:5]}",
            column=column,
            details={"values": sorted(unknown)},
        )
    return normalized.map(lambda v: pd.NA if pd.isna(v) else v in TRUE_FLAG_VALUES).astype("boolean")


def _subject_key(value) -> Optional[str]:
    if pd.isna(value):
        return None
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    if isinstance(value, str):
        return value.strip()
    return str(value)


def subject_keys(series: pd.Series) -> pd.Series:
    """
    Normalize subject ids to string join keys.

    Integer ids read from a column with blanks come back as floats (101.0);
    those are keyed as "101" so they match the integer ids of another table.
    Missing ids become None.
    """
    return pd.Series([_subject_key(v) for v in series], index=series.index, dtype=object)


def _is_present(series: pd.Series) -> pd.Series:
    if pd.api.types.is_object_dtype(series) or pd.api.types.is_string_dtype(series):
        blank = series.map(lambda v: isinstance(v, str) and not v.strip())
        return series.notna() & ~blank
    return series.notna()


def event_indicators(table: EventTable) -> pd.DataFrame:
    """
    Turn an event table into one 0/1 indicator column per CountSpec.

    Returns:
        DataFrame with the subject column followed by one int column per count.
    """
    data = table.data
    indicators = pd.DataFrame({table.subject_column: data[table.subject_column]})

    for spec in table.counts:
        if spec.mode == CountMode.ROW:
            indicators[spec.name] = np.ones(len(data), dtype="int64")
            continue

        values = data[spec.column]
        if spec.mode == CountMode.PRESENT:
            present = _is_present(values)
            nulls = ~present
            qualifies = present
        else:
            flags = parse_flag(values, spec.column)
            nulls = flags.isna()
            qualifies = flags.fillna(False).astype(bool)

        if spec.null_policy == NullPolicy.RAISE and nulls.any():
            raise ValidationError(
                f"Column '{spec.column}' of '{table.name}' has {int(nulls.sum())} null value(s)",
                column=spec.column,
                details={"table": table.name, "null_rows": int(nulls.sum())},
            )
        # ZERO and EXCLUDE both leave a null row uncounted
        indicators[spec.name] = qualifies.astype("int64").to_numpy()

    return indicators


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class Aggregator:
    """Joins subject and event tables and reduces them to one row per group."""

    def __init__(
        self,
        group_column: str = SITE_ID,
        subject_column: str = SUBJECT_ID,
        exposure_column: str = TIME_ON_STUDY,
        exposure_null_policy: NullPolicy = NullPolicy.ZERO,
        days_per_year: Optional[float] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            group_column: Subject column holding the group key (site).
            subject_column: Subject identifier column, shared with event tables.
            exposure_column: Time on study in days.
            exposure_null_policy: ZERO keeps subjects with missing time on study
                at 0 days, EXCLUDE drops them with their events, RAISE fails.
            days_per_year: Divisor converting days to person-years.
        """
        self.group_column = group_column
        self.subject_column = subject_column
        self.exposure_column = exposure_column
        self.exposure_null_policy = exposure_null_policy
        self.days_per_year = days_per_year or config.analysis.days_per_year

    def prepare_subjects(self, subjects: pd.DataFrame) -> pd.DataFrame:
        """Validate the subject table and apply the exposure null policy."""
        require_columns(
            subjects,
            [self.subject_column, self.group_column, self.exposure_column],
            "subjects",
        )

        if subjects[self.subject_column].isna().any():
            raise ValidationError(
                "Subject table has rows without a subject id",
                column=self.subject_column,
            )
        keys = subject_keys(subjects[self.subject_column])
        duplicated = keys[keys.duplicated()]
        if not duplicated.empty:
            raise ValidationError(
                f"Subject ids must be unique; duplicated: {list(duplicated.unique()[:5])}",
                column=self.subject_column,
                details={"duplicates": list(duplicated.unique())},
            )
        if subjects[self.group_column].isna().any():
            raise ValidationError(
                f"{int(subjects[self.group_column].isna().sum())} subject(s) have no '{self.group_column}'",
                column=self.group_column,
            )

        try:
            days = pd.to_numeric(subjects[self.exposure_column], errors="raise").astype(float)
        except (ValueError, TypeError) as e:
            raise ValidationError(
                f"Column '{self.exposure_column}' must be numeric: {e}",
                column=self.exposure_column,
            )
        if (days < 0).any():
            raise ValidationError(
                f"Column '{self.exposure_column}' has negative values",
                column=self.exposure_column,
                details={"subjects": list(subjects.loc[days < 0, self.subject_column])},
            )

        prepared = pd.DataFrame({
            "group_key": subjects[self.group_column].to_numpy(),
            "subject_key": keys.to_numpy(dtype=object),
            "exposure_days": days.to_numpy(),
        })

        missing = prepared["exposure_days"].isna()
        if missing.any():
            missing_ids = list(subjects.loc[missing.to_numpy(), self.subject_column])
            if self.exposure_null_policy == NullPolicy.RAISE:
                raise ValidationError(
                    f"{len(missing_ids)} subject(s) have no '{self.exposure_column}'",
                    column=self.exposure_column,
                    details={"subjects": missing_ids},
                )
            if self.exposure_null_policy == NullPolicy.EXCLUDE:
                logger.warning(
                    f"Excluding {len(missing_ids)} subject(s) without {self.exposure_column}"
                )
                prepared = prepared[~missing].reset_index(drop=True)
            else:
                prepared["exposure_days"] = prepared["exposure_days"].fillna(0.0)

        return prepared

    def prepare_events(self, table: EventTable, known_keys: Sequence[str]) -> pd.DataFrame:
        """Build the per-row indicator frame for an event table."""
        indicators = event_indicators(table)
        indicators = indicators.rename(columns={table.subject_column: "subject_key"})
        indicators["subject_key"] = subject_keys(indicators["subject_key"])

        unkeyed = indicators["subject_key"].isna()
        if unkeyed.any():
            logger.warning(
                f"Skipping {int(unkeyed.sum())} row(s) in '{table.name}' without a subject id"
            )
            indicators = indicators[~unkeyed]

        orphans = ~indicators["subject_key"].isin(set(known_keys))
        if orphans.any():
            logger.warning(
                f"{int(orphans.sum())} row(s) in '{table.name}' reference unknown subjects"
            )

        for name in table.metrics:
            indicators[name] = indicators[name].astype("int64")
        return indicators.reset_index(drop=True)

    def aggregate(
        self,
        subjects: pd.DataFrame,
        event_tables: Sequence[EventTable],
    ) -> pd.DataFrame:
        """
        Reduce subjects and events to one summary row per group.

        Event rows are first summed per subject, so a subject's exposure is
        counted once however many events it has. Groups with no events get
        zero counts.

        Args:
            subjects: Subject table.
            event_tables: Event tables with the counts to take from each.

        Returns:
            DataFrame with the group column, subjects, exposure_years and one
            count column per CountSpec, sorted by group key.
        """
        for table in event_tables:
            require_columns(
                table.data,
                [table.subject_column] + [s.column for s in table.counts if s.column],
                table.name,
            )
        metrics = [name for table in event_tables for name in table.metrics]
        if len(set(metrics)) != len(metrics):
            raise ValidationError(f"Count names must be unique, got {metrics}")

        prepared = self.prepare_subjects(subjects)
        known_subjects = set(subject_keys(subjects[self.subject_column]).dropna())
        frames: Dict[str, pd.DataFrame] = {"subjects": prepared}
        ctes: List[str] = []
        joins: List[str] = []
        selects: List[str] = []

        for i, table in enumerate(event_tables):
            view = f"events_{i}"
            frames[view] = self.prepare_events(table, known_subjects)
            sums = ", ".join(
                f"CAST(SUM({_quote(name)}) AS BIGINT) AS {_quote(name)}" for name in table.metrics
            )
            ctes.append(
                f"ev_{i} AS (SELECT CAST(subject_key AS VARCHAR) AS subject_key, {sums} "
                f"FROM {view} GROUP BY 1)"
            )
            joins.append(f"LEFT JOIN ev_{i} ON s.subject_key = ev_{i}.subject_key")
            selects.extend(
                f"CAST(COALESCE(SUM(ev_{i}.{_quote(name)}), 0) AS BIGINT) AS {_quote(name)}"
                for name in table.metrics
            )

        with_sql = ("WITH " + ",\n".join(ctes)) if ctes else ""
        count_sql = "".join(f",\n    {s}" for s in selects)
        sql = f"""
            {with_sql}
            SELECT
                s.group_key,
                COUNT(DISTINCT s.subject_key) AS {SUBJECT_COUNT},
                CAST(COALESCE(SUM(s.exposure_days), 0) AS DOUBLE) / ? AS {EXPOSURE_YEARS}{count_sql}
            FROM subjects s
            {' '.join(joins)}
            GROUP BY s.group_key
            ORDER BY s.group_key
        """

        with get_connection() as conn:
            for name, frame in frames.items():
                conn.register(name, frame)
            summary = conn.execute(sql, [self.days_per_year]).fetchdf()

        summary = summary.rename(columns={"group_key": self.group_column})
        summary[SUBJECT_COUNT] = summary[SUBJECT_COUNT].astype("int64")
        for name in metrics:
            summary[name] = summary[name].astype("int64")

        logger.info(
            f"Aggregated {len(prepared)} subjects into {len(summary)} "
            f"'{self.group_column}' groups ({', '.join(metrics) or 'no counts'})"
        )
        return summary
