"""Configuration module for Site KRI."""

from .settings import config, AnalysisConfig, ExportConfig, AppConfig, Config
from .logging_config import setup_logging, get_logger
from .config_loader import (
    ConfigurationError,
    FlagThresholds,
    QTLPercentiles,
    load_thresholds,
    clear_config_cache,
    get_flag_thresholds,
    get_qtl_percentiles,
    get_confidence_level,
)

__all__ = [
    # Settings
    "config",
    "AnalysisConfig",
    "ExportConfig",
    "AppConfig",
    "Config",
    # Logging
    "setup_logging",
    "get_logger",
    # Thresholds
    "ConfigurationError",
    "FlagThresholds",
    "QTLPercentiles",
    "load_thresholds",
    "clear_config_cache",
    "get_flag_thresholds",
    "get_qtl_percentiles",
    "get_confidence_level",
]
