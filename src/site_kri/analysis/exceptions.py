"""Exceptions raised by the KRI/QTL analyses."""

from typing import Any, Dict, Optional


class ValidationError(ValueError):
    """Input or threshold validation failed; the analysis produced no output."""

    def __init__(
        self,
        message: str,
        column: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.column = column
        self.details = details or {}
