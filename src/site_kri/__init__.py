"""Site-level key risk indicators and quality tolerance limits for clinical trials."""

__version__ = "1.0.0"
