"""Tests for subject/event aggregation."""

import pytest
import pandas as pd


def _deviation_table(deviations, **kwargs):
    from site_kri.analysis.aggregation import EventTable, CountSpec, CountMode

    return EventTable(
        name="deviations",
        data=deviations,
        counts=[
            CountSpec("deviations", "deviation_date", CountMode.PRESENT, **kwargs),
            CountSpec("important_deviations", "is_important", CountMode.TRUE, **kwargs),
        ],
    )


class TestParseFlag:
    """Tests for flag normalization."""

    def test_mixed_flag_values(self):
        """Test Y/N, yes/no, booleans, 1/0 and nulls."""
        from site_kri.analysis.aggregation import parse_flag

        result = parse_flag(pd.Series(["Y", "n", "Yes", True, 0, 1, None]), "flag")

        assert list(result[:6]) == [True, False, True, True, False, True]
        assert pd.isna(result[6])

    def test_unrecognised_flag_value(self):
        """Test that unknown flag values are rejected."""
        from site_kri.analysis.aggregation import parse_flag
        from site_kri.analysis.exceptions import ValidationError

        with pytest.raises(ValidationError) as exc_info:
            parse_flag(pd.Series(["Y", "maybe"]), "is_important")

        assert exc_info.value.column == "is_important"


class TestCountSpec:
    """Tests for CountSpec and EventTable definitions."""

    def test_column_required_unless_row_mode(self):
        """Test that PRESENT/TRUE counts need a column."""
        from site_kri.analysis.aggregation import CountSpec, CountMode

        with pytest.raises(ValueError):
            CountSpec("deviations", mode=CountMode.PRESENT)

        spec = CountSpec("adverse_events", mode=CountMode.ROW)
        assert spec.column is None

    def test_event_table_needs_counts(self, deviations):
        """Test that an event table without counts is rejected."""
        from site_kri.analysis.aggregation import EventTable

        with pytest.raises(ValueError):
            EventTable(name="deviations", data=deviations, counts=[])


class TestAggregator:
    """Tests for Aggregator."""

    def test_counts_and_exposure_per_site(self, subjects, deviations):
        """Test per-site counts, subject counts and person-years."""
        from site_kri.analysis.aggregation import Aggregator

        summary = Aggregator().aggregate(subjects, [_deviation_table(deviations)])
        rows = summary.set_index("site_id")

        assert list(summary["site_id"]) == ["A", "B", "C", "D"]
        assert rows.loc["A", "subjects"] == 2
        assert rows.loc["A", "deviations"] == 2
        assert rows.loc["A", "important_deviations"] == 1
        assert rows.loc["B", "deviations"] == 1
        assert rows.loc["B", "important_deviations"] == 0
        assert rows.loc["C", "deviations"] == 0

    def test_exposure_counted_once_per_subject(self, subjects, deviations):
        """Test that a subject with many events contributes exposure once."""
        from site_kri.analysis.aggregation import Aggregator

        summary = Aggregator().aggregate(subjects, [_deviation_table(deviations)])
        rows = summary.set_index("site_id")

        # S1 has two deviation rows; site A is still 2 person-years
        assert rows.loc["A", "exposure_years"] == pytest.approx(2.0)
        assert rows.loc["B", "exposure_years"] == pytest.approx(2.0)

    def test_site_without_events_has_zero_counts(self, subjects, deviations):
        """Test that sites absent from the event table still get a row."""
        from site_kri.analysis.aggregation import Aggregator

        summary = Aggregator().aggregate(subjects, [_deviation_table(deviations)])
        rows = summary.set_index("site_id")

        assert rows.loc["D", "deviations"] == 0
        assert rows.loc["D", "important_deviations"] == 0
        assert rows.loc["D", "exposure_years"] == 0

    def test_empty_event_table(self, subjects):
        """Test aggregation against an event table with no rows."""
        from site_kri.analysis.aggregation import Aggregator

        empty = pd.DataFrame({"subject_id": [], "deviation_date": [], "is_important": []})
        summary = Aggregator().aggregate(subjects, [_deviation_table(empty)])

        assert len(summary) == 4
        assert summary["deviations"].sum() == 0

    def test_multiple_event_tables(self, subjects, deviations, adverse_events):
        """Test joining two event tables side by side."""
        from site_kri.analysis.aggregation import Aggregator, EventTable, CountSpec, CountMode

        ae_table = EventTable(
            name="adverse_events",
            data=adverse_events,
            counts=[CountSpec("adverse_events", mode=CountMode.ROW)],
        )
        summary = Aggregator().aggregate(subjects, [_deviation_table(deviations), ae_table])
        rows = summary.set_index("site_id")

        assert rows.loc["A", "deviations"] == 2
        assert rows.loc["A", "adverse_events"] == 2
        assert rows.loc["C", "adverse_events"] == 1
        assert rows.loc["A", "exposure_years"] == pytest.approx(2.0)

    def test_custom_days_per_year(self, subjects, deviations):
        """Test the days-to-years divisor."""
        from site_kri.analysis.aggregation import Aggregator

        summary = Aggregator(days_per_year=365.25 / 2).aggregate(
            subjects, [_deviation_table(deviations)]
        )

        assert summary.set_index("site_id").loc["C", "exposure_years"] == pytest.approx(2.0)


class TestExposureNullPolicy:
    """Tests for missing time on study under each null policy."""

    def test_zero_policy_keeps_subject(self, subjects, deviations):
        """Test that ZERO keeps the subject with no exposure."""
        from site_kri.analysis.aggregation import Aggregator, NullPolicy

        summary = Aggregator(exposure_null_policy=NullPolicy.ZERO).aggregate(
            subjects, [_deviation_table(deviations)]
        )
        rows = summary.set_index("site_id")

        assert rows.loc["B", "subjects"] == 2
        assert rows.loc["B", "exposure_years"] == pytest.approx(2.0)

    def test_exclude_policy_drops_subject(self, subjects, deviations):
        """Test that EXCLUDE removes the subject from the site."""
        from site_kri.analysis.aggregation import Aggregator, NullPolicy

        summary = Aggregator(exposure_null_policy=NullPolicy.EXCLUDE).aggregate(
            subjects, [_deviation_table(deviations)]
        )
        rows = summary.set_index("site_id")

        assert rows.loc["B", "subjects"] == 1
        assert rows.loc["B", "deviations"] == 1

    def test_raise_policy_fails(self, subjects, deviations):
        """Test that RAISE names the subject without time on study."""
        from site_kri.analysis.aggregation import Aggregator, NullPolicy
        from site_kri.analysis.exceptions import ValidationError

        with pytest.raises(ValidationError) as exc_info:
            Aggregator(exposure_null_policy=NullPolicy.RAISE).aggregate(
                subjects, [_deviation_table(deviations)]
            )

        assert exc_info.value.column == "time_on_study_days"
        assert exc_info.value.details["subjects"] == ["S4"]


class TestEventNullPolicy:
    """Tests for null event values under each null policy."""

    @pytest.mark.parametrize("policy_name", ["ZERO", "EXCLUDE"])
    def test_null_values_not_counted(self, subjects, deviations, policy_name):
        """Test that ZERO and EXCLUDE leave null event values uncounted."""
        from site_kri.analysis.aggregation import Aggregator, NullPolicy

        policy = NullPolicy[policy_name]
        summary = Aggregator().aggregate(
            subjects, [_deviation_table(deviations, null_policy=policy)]
        )

        assert summary["deviations"].sum() == 3
        assert summary["important_deviations"].sum() == 1

    def test_raise_policy_fails_on_null(self, subjects, deviations):
        """Test that RAISE rejects a null event value."""
        from site_kri.analysis.aggregation import Aggregator, NullPolicy
        from site_kri.analysis.exceptions import ValidationError

        with pytest.raises(ValidationError):
            Aggregator().aggregate(
                subjects, [_deviation_table(deviations, null_policy=NullPolicy.RAISE)]
            )


class TestAggregatorValidation:
    """Tests for input validation."""

    def test_missing_event_column(self, subjects, deviations):
        """Test that a missing event column fails up front."""
        from site_kri.analysis.aggregation import Aggregator
        from site_kri.analysis.exceptions import ValidationError

        with pytest.raises(ValidationError) as exc_info:
            Aggregator().aggregate(
                subjects, [_deviation_table(deviations.drop(columns=["is_important"]))]
            )

        assert exc_info.value.column == "is_important"

    def test_missing_subject_column(self, subjects, deviations):
        """Test that a missing site column fails."""
        from site_kri.analysis.aggregation import Aggregator
        from site_kri.analysis.exceptions import ValidationError

        with pytest.raises(ValidationError):
            Aggregator().aggregate(subjects.drop(columns=["site_id"]), [_deviation_table(deviations)])

    def test_duplicate_subject_ids(self, subjects, deviations):
        """Test that subject ids must be unique."""
        from site_kri.analysis.aggregation import Aggregator
        from site_kri.analysis.exceptions import ValidationError

        duplicated = pd.concat([subjects, subjects.iloc[[0]]], ignore_index=True)

        with pytest.raises(ValidationError):
            Aggregator().aggregate(duplicated, [_deviation_table(deviations)])

    def test_negative_exposure(self, subjects, deviations):
        """Test that negative time on study is rejected."""
        from site_kri.analysis.aggregation import Aggregator
        from site_kri.analysis.exceptions import ValidationError

        bad = subjects.copy()
        bad.loc[0, "time_on_study_days"] = -1.0

        with pytest.raises(ValidationError):
            Aggregator().aggregate(bad, [_deviation_table(deviations)])


class TestSubjectKeys:
    """Tests for matching subject ids across tables of different dtypes."""

    def test_whole_number_floats_match_integers(self):
        from site_kri.analysis.aggregation import subject_keys

        keys = subject_keys(pd.Series([101.0, None, 103.0]))

        assert list(keys) == ["101", None, "103"]
        assert list(subject_keys(pd.Series([101, 102]))) == ["101", "102"]

    def test_string_ids_trimmed(self):
        from site_kri.analysis.aggregation import subject_keys

        assert list(subject_keys(pd.Series([" S1", "S2 ", "1.5"]))) == ["S1", "S2", "1.5"]

    def test_integer_subjects_with_blank_event_id(self):
        """Test integer subject ids against an event id column read as float."""
        from site_kri.analysis.aggregation import Aggregator

        subjects = pd.DataFrame({
            "subject_id": [101, 102, 103],
            "site_id": ["A", "A", "B"],
            "time_on_study_days": [365.25, 365.25, 365.25],
        })
        deviations = pd.DataFrame({
            "subject_id": [101, 101, 103, None],
            "deviation_date": pd.to_datetime(["2024-01-05", "2024-02-05", "2024-03-05", "2024-04-05"]),
            "is_important": ["Y", "N", "N", "Y"],
        })
        assert deviations["subject_id"].dtype == float

        summary = Aggregator().aggregate(subjects, [_deviation_table(deviations)])

        assert list(summary["deviations"]) == [2, 1]
        assert list(summary["important_deviations"]) == [1, 0]

    def test_duplicate_ids_after_normalizing(self, deviations):
        from site_kri.analysis.aggregation import Aggregator
        from site_kri.analysis.exceptions import ValidationError

        subjects = pd.DataFrame({
            "subject_id": ["S1", "S1 "],
            "site_id": ["A", "B"],
            "time_on_study_days": [10.0, 10.0],
        })

        with pytest.raises(ValidationError):
            Aggregator().aggregate(subjects, [_deviation_table(deviations)])
