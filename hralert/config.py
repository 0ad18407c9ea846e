"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Runtime selection of the heart-rate source instead of build-time branching
"""

import os
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class MonitoringConfig(BaseModel):
    """Alerting behaviour of the monitor."""

    alert_cooldown_seconds: float = Field(
        default=60.0, gt=0.0, description="Minimum interval between consecutive alerts"
    )
    default_threshold_bpm: float = Field(
        default=110.0, gt=0.0, description="Threshold used when none has been saved"
    )
    alert_history_size: int = Field(default=100, gt=0, description="Fired alerts kept in memory")

    # Advisory bounds for threshold input controls; the core accepts any positive value
    threshold_min_bpm: float = Field(default=80.0, gt=0.0, description="Lowest selectable threshold")
    threshold_max_bpm: float = Field(default=180.0, gt=0.0, description="Highest selectable threshold")
    threshold_step_bpm: float = Field(default=5.0, gt=0.0, description="Threshold input step")

    @model_validator(mode="after")
    def bounds_ordered(self) -> "MonitoringConfig":
        if self.threshold_min_bpm > self.threshold_max_bpm:
            raise ValueError("threshold_min_bpm must not exceed threshold_max_bpm")
        return self


class SourceConfig(BaseModel):
    """Which heart-rate source to run and how the synthetic one behaves."""

    kind: Literal["synthetic", "live"] = Field(default="synthetic", description="Signal source")
    sample_interval_seconds: float = Field(
        default=1.0, gt=0.0, description="Seconds between synthetic samples"
    )
    synthetic_min_bpm: float = Field(default=90.0, gt=0.0, description="Lowest synthetic reading")
    synthetic_max_bpm: float = Field(default=120.0, gt=0.0, description="Highest synthetic reading")

    @model_validator(mode="after")
    def synthetic_range_ordered(self) -> "SourceConfig":
        if self.synthetic_min_bpm > self.synthetic_max_bpm:
            raise ValueError("synthetic_min_bpm must not exceed synthetic_max_bpm")
        return self


class StorageConfig(BaseModel):
    """Where user preferences (the alert threshold) are kept."""

    backend: Literal["file", "memory"] = Field(default="file", description="Preferences backend")
    preferences_path: str = Field(
        default="./hralert_preferences.json", description="Path of the preferences file"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Component configs
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    # Detect environment
    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    monitoring_config = MonitoringConfig(
        alert_cooldown_seconds=float(os.getenv("ALERT_COOLDOWN_SECONDS", "60.0")),
        default_threshold_bpm=float(os.getenv("DEFAULT_THRESHOLD_BPM", "110.0")),
    )

    source_config = SourceConfig(
        kind=cast(Literal["synthetic", "live"], os.getenv("HRALERT_SOURCE", "synthetic").strip().lower()),
        sample_interval_seconds=float(os.getenv("SAMPLE_INTERVAL_SECONDS", "1.0")),
    )

    storage_config = StorageConfig(
        backend=cast(Literal["file", "memory"], os.getenv("PREFERENCES_BACKEND", "file").strip().lower()),
        preferences_path=os.getenv("PREFERENCES_PATH", "./hralert_preferences.json"),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        monitoring=monitoring_config,
        source=source_config,
        storage=storage_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")
        print(f"✅ Heart-rate source: {config.source.kind}")
    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


def clamp_threshold(value: float, config: MonitoringConfig | None = None) -> float:
    """Snap a threshold picked in the UI to the configured step and bounds."""
    config = config or get_config().monitoring
    stepped = round(value / config.threshold_step_bpm) * config.threshold_step_bpm
    return min(config.threshold_max_bpm, max(config.threshold_min_bpm, stepped))


# Development helpers
def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n❤️ MONITORING CONFIGURATION")
    print(f"Default Threshold: {config.monitoring.default_threshold_bpm:.0f} BPM")
    print(f"Alert Cooldown: {config.monitoring.alert_cooldown_seconds:.0f}s")
    print(
        f"Threshold Range: {config.monitoring.threshold_min_bpm:.0f}-"
        f"{config.monitoring.threshold_max_bpm:.0f} (step {config.monitoring.threshold_step_bpm:.0f})"
    )

    print("\n📡 SOURCE CONFIGURATION")
    print(f"Source: {config.source.kind}")
    if config.source.kind == "synthetic":
        print(f"Interval: {config.source.sample_interval_seconds}s")
        print(f"Range: {config.source.synthetic_min_bpm:.0f}-{config.source.synthetic_max_bpm:.0f} BPM")

    print("\n💾 STORAGE CONFIGURATION")
    print(f"Backend: {config.storage.backend}")
    print(f"Preferences: {config.storage.preferences_path}")


if __name__ == "__main__":
    # Test configuration loading
    validate_config()
    print_config_summary()
