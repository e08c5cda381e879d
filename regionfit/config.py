"""
Configuration management for RegionFit.

This module provides centralized configuration for all system components:
- Rule store behaviour (versioning, experiments, maintenance intervals)
- Persistence backend selection
- Scoring weights and thresholds
- Logging settings
"""

import os
from typing import Dict, Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()

SCORED_CATEGORIES = ("language", "culture", "compliance", "userExperience")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class RuleSystemConfig(BaseModel):
    """Configuration for the rule and experiment stores."""

    enable_versioning: bool = Field(
        default=True, description="Record a version snapshot on every create/update"
    )
    enable_ab_testing: bool = Field(
        default=True, description="Overlay active A/B test variants when selecting rules"
    )
    max_version_history: int = Field(
        default=10, gt=0, description="Version snapshots kept per rule (oldest evicted)"
    )
    load_default_rules: bool = Field(
        default=True, description="Seed the default rule catalogue into an empty store"
    )
    refresh_interval_seconds: float = Field(
        default=60.0, ge=0.0, description="Rule source refresh interval (0 disables)"
    )
    auto_backup: bool = Field(default=True, description="Periodically export a backup bundle")
    backup_interval_seconds: float = Field(
        default=3600.0, gt=0.0, description="Interval between automatic backups"
    )
    backup_dir: str = Field(default="backups", description="Directory for backup bundles")
    max_backups: int = Field(default=24, gt=0, description="Backup files kept on disk")


class StorageConfig(BaseModel):
    """Configuration for the key-value persistence backend."""

    backend: Literal["memory", "file", "sql"] = Field(
        default="memory", description="Persistence backend to use"
    )
    data_dir: str = Field(default="rule_data", description="Root directory for the file backend")
    database_url: str = Field(
        default="sqlite:///regionfit.db", description="SQLAlchemy URL for the sql backend"
    )
    timeout_seconds: float = Field(
        default=5.0, gt=0.0, description="Upper bound for a single backend call"
    )


class ScoringConfig(BaseModel):
    """Configuration for the scoring engine and result merger."""

    category_weights: Dict[str, float] = Field(
        default_factory=lambda: {
            "language": 0.30,
            "culture": 0.25,
            "compliance": 0.25,
            "userExperience": 0.20,
        },
        description="Fixed weights blending category scores into the overall score",
    )
    thresholds: Dict[str, int] = Field(
        default_factory=lambda: {
            "language": 70,
            "culture": 70,
            "compliance": 80,
            "userExperience": 70,
        },
        description="Category score below which recommendations are produced",
    )
    five_bucket: bool = Field(
        default=False, description="Report crossBorder rules as their own category"
    )
    cross_border_bucket: Literal["language", "culture", "compliance", "userExperience"] = Field(
        default="userExperience",
        description="Bucket for crossBorder rules whose actions name no target category",
    )
    merge_local_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    merge_external_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    external_timeout_seconds: float = Field(
        default=10.0, gt=0.0, description="Timeout for the advisory score provider"
    )
    parallel_workers: int = Field(
        default=0, ge=0, description="Threads used to evaluate rule conditions (0 = sequential)"
    )
    slow_evaluation_ms: float = Field(
        default=500.0, gt=0.0, description="Evaluation time above which a warning is logged"
    )

    @field_validator("category_weights")
    @classmethod
    def validate_category_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        if set(v) != set(SCORED_CATEGORIES):
            raise ValueError(f"category_weights must cover exactly {list(SCORED_CATEGORIES)}")
        if abs(sum(v.values()) - 1.0) > 1e-6:
            raise ValueError("category_weights must sum to 1.0")
        return v


class LogConfig(BaseModel):
    """Configuration for logging system."""

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
        "<level>{message}</level>",
        description="Log message format",
    )
    rotation: str = Field(default="50 MB", description="Log file rotation size")
    retention: str = Field(default="2 weeks", description="Log file retention period")
    log_dir: str = Field(default="logs", description="Directory for log files")
    enable_file_logging: bool = Field(
        default=False, description="Whether to enable file logging"
    )
    enable_console_logging: bool = Field(
        default=True, description="Whether to enable console logging"
    )


class Config(BaseModel):
    """Main configuration object for RegionFit."""

    rules: RuleSystemConfig = Field(default_factory=RuleSystemConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls(
            rules=RuleSystemConfig(
                enable_versioning=_env_bool("REGIONFIT_ENABLE_VERSIONING", True),
                enable_ab_testing=_env_bool("REGIONFIT_ENABLE_AB_TESTING", True),
                max_version_history=int(os.getenv("REGIONFIT_MAX_VERSION_HISTORY", "10")),
                refresh_interval_seconds=float(os.getenv("REGIONFIT_REFRESH_INTERVAL", "60")),
                backup_interval_seconds=float(os.getenv("REGIONFIT_BACKUP_INTERVAL", "3600")),
                backup_dir=os.getenv("REGIONFIT_BACKUP_DIR", "backups"),
            ),
            storage=StorageConfig(
                backend=cast(
                    Literal["memory", "file", "sql"],
                    os.getenv("REGIONFIT_STORAGE_BACKEND", "memory"),
                ),
                data_dir=os.getenv("REGIONFIT_DATA_DIR", "rule_data"),
                database_url=os.getenv("REGIONFIT_DATABASE_URL", "sqlite:///regionfit.db"),
                timeout_seconds=float(os.getenv("REGIONFIT_STORAGE_TIMEOUT", "5")),
            ),
            scoring=ScoringConfig(
                five_bucket=_env_bool("REGIONFIT_FIVE_BUCKET", False),
                external_timeout_seconds=float(os.getenv("REGIONFIT_EXTERNAL_TIMEOUT", "10")),
            ),
            logging=LogConfig(
                level=cast(
                    Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                    os.getenv("LOG_LEVEL", "INFO"),
                )
            ),
        )


# Global configuration instance
# This can be imported throughout the codebase
config = Config.from_env()
