"""Application settings and configuration."""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Package config directory (holds the bundled threshold file)
CONFIG_DIR = Path(__file__).parent


@dataclass
class AnalysisConfig:
    """Analysis configuration settings."""

    days_per_year: float = field(
        default_factory=lambda: float(os.getenv("SITE_KRI_DAYS_PER_YEAR", "365.25"))
    )
    thresholds_file: Path = field(
        default_factory=lambda: Path(
            os.getenv("SITE_KRI_THRESHOLDS_FILE", str(CONFIG_DIR / "kri_thresholds.yaml"))
        )
    )


@dataclass
class ExportConfig:
    """Export paths configuration."""

    exports_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("SITE_KRI_EXPORT_PATH", str(Path.cwd() / "exports"))
        )
    )


@dataclass
class AppConfig:
    """Application configuration settings."""

    name: str = field(default_factory=lambda: os.getenv("SITE_KRI_APP_NAME", "Site KRI"))
    version: str = "1.0.0"
    log_level: str = field(default_factory=lambda: os.getenv("SITE_KRI_LOG_LEVEL", "INFO"))
    log_file: Optional[Path] = field(
        default_factory=lambda: Path(os.environ["SITE_KRI_LOG_FILE"])
        if os.getenv("SITE_KRI_LOG_FILE")
        else None
    )


@dataclass
class Config:
    """Main configuration container."""

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    app: AppConfig = field(default_factory=AppConfig)


# Global config instance
config = Config()
