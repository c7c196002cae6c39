"""Constants for Site KRI: input column names, labels and colours."""

from typing import Dict


# =============================================================================
# Input Column Names
# =============================================================================

SUBJECT_ID = "subject_id"
SITE_ID = "site_id"
TIME_ON_STUDY = "time_on_study_days"
ENROLLMENT_DATE = "enrollment_date"

DEVIATION_DATE = "deviation_date"
DEVIATION_IMPORTANT = "is_important"
AE_SERIOUS = "is_serious"
WITHDRAWAL = "is_withdrawal"


# =============================================================================
# Summary Column Names
# =============================================================================

SUBJECT_COUNT = "subjects"
EXPOSURE_YEARS = "exposure_years"

# Per-metric columns are "<metric>_<suffix>", e.g. "deviations_expected"
RATE_SUFFIX = "rate"
EXPECTED_SUFFIX = "expected"
STATISTIC_SUFFIX = "statistic"
P_VALUE_SUFFIX = "p_value"
SMR_SUFFIX = "smr"
RATE_LOWER_SUFFIX = "rate_lower"
RATE_UPPER_SUFFIX = "rate_upper"
SMR_LOWER_SUFFIX = "smr_lower"
SMR_UPPER_SUFFIX = "smr_upper"
FLAG_SUFFIX = "flag"

# Cumulative series columns
TIME_POINT = "time_point"
EVENT_COUNT = "count"
PARTICIPANTS = "participants"
CUMULATIVE_COUNT = "cumulative_count"
CUMULATIVE_PARTICIPANTS = "cumulative_participants"
CUMULATIVE_RATE = "cumulative_rate"

QTL_BAND = "qtl_band"


def metric_column(metric: str, suffix: str) -> str:
    """Name of a derived per-metric summary column."""
    return f"{metric}_{suffix}"


# =============================================================================
# Flag Values
# =============================================================================

# Values accepted as true / false in flag columns (compared upper-cased)
TRUE_FLAG_VALUES = {"Y", "YES", "TRUE", "T", "1", "1.0"}
FALSE_FLAG_VALUES = {"N", "NO", "FALSE", "F", "0", "0.0", ""}


# =============================================================================
# QTL Band Labels
# =============================================================================

BAND_BELOW = "Below QTL"
BAND_WITHIN = "Within QTL"
BAND_ABOVE = "Above QTL"


# =============================================================================
# Colors (used by the Excel exporter)
# =============================================================================

FLAG_COLORS: Dict[str, str] = {
    "High": "F8696B",
    "Elevated": "FFC7CE",
    "Within Expected Range": "FFFFFF",
    "Reduced": "C6E0F5",
    "Low": "5B9BD5",
}

BAND_SECONDARY_COLOR = "FFEB9C"

QTL_BAND_COLORS: Dict[str, str] = {
    BAND_BELOW: "5B9BD5",
    BAND_WITHIN: "FFFFFF",
    BAND_ABOVE: "F8696B",
}
