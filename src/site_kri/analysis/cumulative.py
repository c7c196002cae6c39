"""Cumulative time series feeding the QTL engine."""

from typing import Optional
import pandas as pd
import numpy as np

from ..config.constants import (
    TIME_POINT,
    EVENT_COUNT,
    PARTICIPANTS,
    CUMULATIVE_COUNT,
    CUMULATIVE_PARTICIPANTS,
    CUMULATIVE_RATE,
)
from ..config.logging_config import get_logger
from ..database import get_connection
from .aggregation import subject_keys
from .exceptions import ValidationError

logger = get_logger("cumulative")

# Accepted bucket sizes for date time axes (DuckDB DATE_TRUNC parts)
TIME_BUCKETS = ("day", "week", "month", "quarter", "year")


def build_cumulative_series(
    data: pd.DataFrame,
    time_column: str,
    count_column: Optional[str] = None,
    subject_column: Optional[str] = None,
    freq: Optional[str] = None,
) -> pd.DataFrame:
    """
    Build a time-ordered series of running counts, participants and rate.

    For each distinct time point (ascending): count is the sum of count_column
    (one per row if None; nulls count as 0), participants is the number of
    distinct subjects (rows if subject_column is None). Rows without a time
    point are dropped.

    Args:
        data: Row-level table.
        time_column: Time axis; dates are bucketed when freq is given.
        count_column: Non-negative per-row event count or 0/1 indicator.
        subject_column: Participant identifier.
        freq: One of TIME_BUCKETS, or None to use raw time values.

    Returns:
        DataFrame with time_point, count, participants, cumulative_count,
        cumulative_participants and cumulative_rate.
    """
    required = [c for c in (time_column, count_column, subject_column) if c]
    missing = [c for c in required if c not in data.columns]
    if missing:
        raise ValidationError(
            f"Cumulative series is missing column(s): {', '.join(missing)}",
            column=missing[0],
        )

    times = data[time_column]
    if freq is not None:
        if freq not in TIME_BUCKETS:
            raise ValidationError(
                f"Unknown time bucket '{freq}'; expected one of {TIME_BUCKETS}",
                column=time_column,
            )
        try:
            times = pd.to_datetime(times, errors="raise")
        except (ValueError, TypeError) as e:
            raise ValidationError(
                f"Column '{time_column}' must hold dates to bucket by {freq}: {e}",
                column=time_column,
            )

    if count_column is None:
        counts = pd.Series(1, index=data.index, dtype="int64")
    else:
        raw = data[count_column]
        if pd.api.types.is_bool_dtype(raw):
            raw = raw.astype("Int64")
        elif not pd.api.types.is_numeric_dtype(raw):
            raise ValidationError(f"Count column '{count_column}' must be numeric", column=count_column)
        counts = raw.fillna(0).astype(float)
        if (counts < 0).any():
            raise ValidationError(
                f"Count column '{count_column}' has negative values",
                column=count_column,
            )

    if subject_column is None:
        subjects = pd.Series(np.arange(len(data)), index=data.index).astype(str)
    else:
        subjects = subject_keys(data[subject_column])

    frame = pd.DataFrame({
        "t": times.to_numpy(),
        "n": counts.to_numpy(dtype=float),
        "subject_key": subjects.to_numpy(dtype=object),
    })
    untimed = frame["t"].isna()
    if untimed.any():
        logger.warning(f"Dropping {int(untimed.sum())} row(s) without '{time_column}'")
        frame = frame[~untimed].reset_index(drop=True)

    time_expr = f"DATE_TRUNC('{freq}', CAST(t AS TIMESTAMP))" if freq else "t"
    sql = f"""
        WITH per_point AS (
            SELECT
                {time_expr} AS time_point,
                SUM(n) AS event_count,
                COUNT(DISTINCT subject_key) AS participants
            FROM series
            GROUP BY {time_expr}
        )
        SELECT
            time_point,
            event_count,
            participants,
            SUM(event_count) OVER w AS cumulative_count,
            SUM(participants) OVER w AS cumulative_participants
        FROM per_point
        WINDOW w AS (ORDER BY time_point ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW)
        ORDER BY time_point
    """

    with get_connection() as conn:
        conn.register("series", frame)
        series = conn.execute(sql).fetchdf()

    series = series.rename(columns={
        "time_point": TIME_POINT,
        "event_count": EVENT_COUNT,
        "participants": PARTICIPANTS,
        "cumulative_count": CUMULATIVE_COUNT,
        "cumulative_participants": CUMULATIVE_PARTICIPANTS,
    })
    if freq is not None:
        series[TIME_POINT] = pd.to_datetime(series[TIME_POINT])
    series[EVENT_COUNT] = series[EVENT_COUNT].astype(float)
    series[PARTICIPANTS] = series[PARTICIPANTS].astype("int64")
    series[CUMULATIVE_COUNT] = series[CUMULATIVE_COUNT].astype(float)
    series[CUMULATIVE_PARTICIPANTS] = series[CUMULATIVE_PARTICIPANTS].astype("int64")

    cum_participants = series[CUMULATIVE_PARTICIPANTS].to_numpy(dtype=float)
    series[CUMULATIVE_RATE] = np.divide(
        series[CUMULATIVE_COUNT].to_numpy(dtype=float),
        cum_participants,
        out=np.zeros(len(series)),
        where=cum_participants > 0,
    )

    logger.info(f"Built cumulative series over {len(series)} '{time_column}' points")
    return series
