"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class EngineConfig(BaseModel):
    """Tunables of the availability and booking engine."""
    slot_granularity_minutes: int = 15
    slot_cache_ttl_seconds: float = 120
    roster_cache_ttl_seconds: float = 300
    default_service_duration: int = 30
    suggestion_count: int = 3

    @field_validator(
        "slot_granularity_minutes",
        "slot_cache_ttl_seconds",
        "roster_cache_ttl_seconds",
        "default_service_duration",
    )
    @classmethod
    def validate_positive(cls, value: float) -> float:
        """Granularity, TTLs and durations must be positive."""
        if value <= 0:
            raise ValueError(f"Value must be greater than zero, got {value}")
        return value

    @field_validator("suggestion_count")
    @classmethod
    def validate_suggestions(cls, value: int) -> int:
        if value < 0:
            raise ValueError("suggestion_count cannot be negative")
        return value


class StoreConfig(BaseModel):
    """Persistence backend settings."""
    backend: Literal["memory", "firestore"] = "memory"
    data_file: Optional[Path] = None
    project_id: str = ""
    database: str = "(default)"
    api_key: str = ""
    id_token: str = ""
    timeout_seconds: float = 30

    @model_validator(mode="after")
    def validate_backend(self) -> "StoreConfig":
        """The Firestore backend cannot work without a project."""
        if self.backend == "firestore" and not self.project_id:
            raise ValueError("store.project_id is required for the firestore backend")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    engine: EngineConfig = Field(default_factory=EngineConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    default_tenant: str = ""
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**data)

        # Relative data files are resolved against the config file location
        data_file = config.store.data_file
        if data_file is not None and not data_file.is_absolute():
            config.store.data_file = config_path.parent / data_file

        return config

    @classmethod
    def load_or_default(cls, config_path: Path | None) -> "AppConfig":
        """Load ``config_path`` if it exists, otherwise fall back to defaults."""
        path = config_path or get_default_config_path()
        if config_path is None and not path.exists():
            return cls()
        return cls.load_from_yaml(path)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
