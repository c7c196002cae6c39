"""DuckDB connection management for Site KRI.

Analyses run against a private in-memory database per call; input
DataFrames are registered as views and never copied into tables.
"""

import duckdb
from typing import Optional
from contextlib import contextmanager

from ..config.logging_config import get_logger

logger = get_logger("database")


class AnalysisConnection:
    """Manages an in-memory DuckDB connection with registered DataFrames."""

    def __init__(self, threads: Optional[int] = None):
        """
        Initialize the connection manager.

        Args:
            threads: DuckDB worker threads (DuckDB default if None).
        """
        self.threads = threads
        self._connection: Optional[duckdb.DuckDBPyConnection] = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Open the in-memory database.

        Returns:
            DuckDB connection object.
        """
        if self._connection is not None:
            return self._connection

        self._connection = duckdb.connect(":memory:")
        if self.threads:
            self._connection.execute(f"SET threads = {int(self.threads)}")

        logger.debug("Opened in-memory analysis database")
        return self._connection

    def close(self) -> None:
        """Close the connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.debug("Analysis database closed")

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """Get the current connection, establishing if needed."""
        if self._connection is None:
            return self.connect()
        return self._connection

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False


@contextmanager
def get_connection(threads: Optional[int] = None) -> duckdb.DuckDBPyConnection:
    """
    Context manager for analysis connections.

    Example:
        with get_connection() as conn:
            conn.register("subjects", subjects_df)
            df = conn.execute("SELECT COUNT(*) FROM subjects").fetchdf()
    """
    db = AnalysisConnection(threads)
    try:
        yield db.connect()
    finally:
        db.close()
