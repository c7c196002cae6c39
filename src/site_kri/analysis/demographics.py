"""Per-site demographic profile of enrolled subjects."""

from typing import Sequence
import pandas as pd

from ..config.constants import SUBJECT_ID, SITE_ID, TIME_ON_STUDY, SUBJECT_COUNT
from ..config.logging_config import get_logger
from .aggregation import require_columns

logger = get_logger("demographics")


def summarize_demographics(
    subjects: pd.DataFrame,
    group_column: str = SITE_ID,
    numeric_columns: Sequence[str] = (),
    categorical_columns: Sequence[str] = (),
    subject_column: str = SUBJECT_ID,
    exposure_column: str = TIME_ON_STUDY,
) -> pd.DataFrame:
    """
    Summarize subjects per group.

    Means and medians skip missing values; categorical levels are counted
    per group with missing values reported as "Missing".

    Args:
        subjects: Subject table.
        group_column: Group key (site).
        numeric_columns: Attributes to average (e.g. age).
        categorical_columns: Attributes to count by level (e.g. sex).
        subject_column: Subject identifier.
        exposure_column: Time on study in days.

    Returns:
        One row per group with subject count, mean/median time on study,
        `mean_<col>` per numeric column and `<col>_<level>` counts.
    """
    require_columns(
        subjects,
        [group_column, subject_column, exposure_column, *numeric_columns, *categorical_columns],
        "subjects",
    )

    grouped = subjects.groupby(group_column, sort=True)
    summary = pd.DataFrame({
        SUBJECT_COUNT: grouped[subject_column].nunique(),
        f"mean_{exposure_column}": grouped[exposure_column].mean(),
        f"median_{exposure_column}": grouped[exposure_column].median(),
    })

    for column in numeric_columns:
        values = pd.to_numeric(subjects[column], errors="coerce")
        summary[f"mean_{column}"] = values.groupby(subjects[group_column]).mean()

    for column in categorical_columns:
        levels = subjects[column].astype(object).where(subjects[column].notna(), "Missing")
        counts = pd.crosstab(subjects[group_column], levels)
        counts.columns = [f"{column}_{level}" for level in counts.columns]
        summary = summary.join(counts)

    summary = summary.reset_index()
    logger.info(f"Summarized demographics for {len(summary)} '{group_column}' groups")
    return summary
