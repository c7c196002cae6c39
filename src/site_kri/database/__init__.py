"""Database module for in-memory DuckDB analysis queries."""

from .connection import AnalysisConnection, get_connection

__all__ = [
    "AnalysisConnection",
    "get_connection",
]
