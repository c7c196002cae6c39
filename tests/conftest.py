"""Pytest configuration and fixtures for Site KRI tests."""

import pytest
import pandas as pd


@pytest.fixture
def subjects():
    """Six subjects over four sites; one without time on study, one with none."""
    return pd.DataFrame({
        "subject_id": ["S1", "S2", "S3", "S4", "S5", "S6"],
        "site_id": ["A", "A", "B", "B", "C", "D"],
        "time_on_study_days": [365.25, 365.25, 730.5, None, 365.25, 0.0],
        "enrollment_date": pd.to_datetime([
            "2024-01-10", "2024-01-20", "2024-02-05", "2024-03-01", "2024-03-15", "2024-04-02"
        ]),
        "age": [34, 51, 47, 62, 29, 40],
        "sex": ["F", "M", "F", None, "M", "F"],
    })


@pytest.fixture
def deviations():
    """Deviation rows: S1 twice, S3 once dated and once undated, one unknown subject."""
    return pd.DataFrame({
        "subject_id": ["S1", "S1", "S3", "S3", "S9"],
        "deviation_date": pd.to_datetime([
            "2024-01-15", "2024-02-10", "2024-02-20", None, "2024-03-05"
        ]),
        "is_important": ["Y", "N", "N", None, "Y"],
    })


@pytest.fixture
def adverse_events():
    """Adverse event rows for S1 (two) and S5 (one)."""
    return pd.DataFrame({
        "subject_id": ["S1", "S1", "S5"],
        "is_serious": [True, False, True],
    })


@pytest.fixture
def withdrawals():
    """Withdrawal flags for four of the six subjects."""
    return pd.DataFrame({
        "subject_id": ["S2", "S4", "S5", "S6"],
        "is_withdrawal": ["Y", "Yes", "N", "No"],
    })


@pytest.fixture
def site_counts():
    """Helper building a bare per-site summary table."""
    def _build(counts, exposures, metric="deviations"):
        return pd.DataFrame({
            "site_id": [f"site_{i + 1}" for i in range(len(counts))],
            "subjects": [1] * len(counts),
            "exposure_years": [float(e) for e in exposures],
            metric: list(counts),
        })
    return _build
