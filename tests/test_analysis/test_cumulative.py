"""Tests for cumulative series construction."""

import pytest
import pandas as pd


class TestBuildCumulativeSeries:
    """Tests for build_cumulative_series."""

    def test_numeric_time_axis(self):
        """Test running counts, participants and rate on a plain time axis."""
        from site_kri.analysis.cumulative import build_cumulative_series

        data = pd.DataFrame({
            "visit": [3, 1, 2, 2],
            "events": [1, 0, 1, 1],
            "subject_id": ["a", "b", "c", "d"],
        })
        series = build_cumulative_series(data, "visit", "events", "subject_id")

        assert list(series["time_point"]) == [1, 2, 3]
        assert list(series["count"]) == [0.0, 2.0, 1.0]
        assert list(series["participants"]) == [1, 2, 1]
        assert list(series["cumulative_count"]) == [0.0, 2.0, 3.0]
        assert list(series["cumulative_participants"]) == [1, 3, 4]
        assert list(series["cumulative_rate"]) == pytest.approx([0.0, 2 / 3, 0.75])

    def test_series_non_decreasing(self):
        from site_kri.analysis.cumulative import build_cumulative_series

        data = pd.DataFrame({
            "visit": [5, 1, 4, 2, 3, 1],
            "events": [2, 0, 1, 3, 0, 1],
            "subject_id": ["a", "b", "c", "d", "e", "f"],
        })
        series = build_cumulative_series(data, "visit", "events", "subject_id")

        assert series["cumulative_count"].is_monotonic_increasing
        assert series["cumulative_participants"].is_monotonic_increasing

    def test_monthly_buckets(self):
        """Test bucketing dates by month; rows count when no count column is given."""
        from site_kri.analysis.cumulative import build_cumulative_series

        data = pd.DataFrame({
            "deviation_date": pd.to_datetime(["2024-01-05", "2024-01-20", "2024-02-01"]),
            "subject_id": ["S1", "S1", "S2"],
        })
        series = build_cumulative_series(
            data, "deviation_date", subject_column="subject_id", freq="month"
        )

        assert list(series["time_point"]) == [pd.Timestamp("2024-01-01"), pd.Timestamp("2024-02-01")]
        assert list(series["count"]) == [2.0, 1.0]
        assert list(series["participants"]) == [1, 1]
        assert list(series["cumulative_rate"]) == pytest.approx([2.0, 1.5])

    def test_rows_without_time_dropped(self):
        from site_kri.analysis.cumulative import build_cumulative_series

        data = pd.DataFrame({
            "deviation_date": pd.to_datetime(["2024-01-05", None, "2024-02-01"]),
        })
        series = build_cumulative_series(data, "deviation_date", freq="month")

        assert list(series["cumulative_count"]) == [1.0, 2.0]
        assert list(series["cumulative_participants"]) == [1, 2]

    def test_boolean_count_column(self):
        from site_kri.analysis.cumulative import build_cumulative_series

        data = pd.DataFrame({"visit": [1, 1, 2], "withdrawn": [True, False, True]})
        series = build_cumulative_series(data, "visit", "withdrawn")

        assert list(series["cumulative_count"]) == [1.0, 2.0]
        assert list(series["cumulative_rate"]) == pytest.approx([0.5, 2 / 3])

    def test_negative_count(self):
        from site_kri.analysis.cumulative import build_cumulative_series
        from site_kri.analysis.exceptions import ValidationError

        data = pd.DataFrame({"visit": [1, 2], "events": [1, -1]})

        with pytest.raises(ValidationError):
            build_cumulative_series(data, "visit", "events")

    def test_unknown_time_bucket(self):
        from site_kri.analysis.cumulative import build_cumulative_series
        from site_kri.analysis.exceptions import ValidationError

        data = pd.DataFrame({"deviation_date": pd.to_datetime(["2024-01-05"])})

        with pytest.raises(ValidationError):
            build_cumulative_series(data, "deviation_date", freq="fortnight")

    def test_missing_column(self):
        from site_kri.analysis.cumulative import build_cumulative_series
        from site_kri.analysis.exceptions import ValidationError

        with pytest.raises(ValidationError) as exc_info:
            build_cumulative_series(pd.DataFrame({"visit": [1]}), "visit", "events")

        assert exc_info.value.column == "events"

    def test_participants_match_across_id_dtypes(self):
        """Test that 7 and 7.0 count as one participant."""
        from site_kri.analysis.cumulative import build_cumulative_series

        data = pd.DataFrame({"visit": [1, 1, 1], "subject_id": pd.Series([7, 7.0, None], dtype=object)})
        series = build_cumulative_series(data, "visit", subject_column="subject_id")

        assert list(series["participants"]) == [1]
        assert list(series["count"]) == [3.0]
