"""Tests for the analysis database connection."""

import pandas as pd


class TestAnalysisConnection:
    """Tests for AnalysisConnection and get_connection."""

    def test_context_manager(self):
        from site_kri.database import AnalysisConnection

        with AnalysisConnection(threads=1) as db:
            assert db.connection.execute("SELECT 42").fetchone()[0] == 42

        assert db._connection is None

    def test_registered_frame(self):
        from site_kri.database import get_connection

        df = pd.DataFrame({"site_id": ["A", "A", "B"]})

        with get_connection() as conn:
            conn.register("subjects", df)
            result = conn.execute(
                "SELECT site_id, COUNT(*) AS n FROM subjects GROUP BY site_id ORDER BY site_id"
            ).fetchdf()

        assert list(result["n"]) == [2, 1]
