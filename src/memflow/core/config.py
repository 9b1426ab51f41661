"""Configuration management for memflow."""

from typing import Optional
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MEMFLOW_",
        extra="ignore",
        populate_by_name=True,
    )

    # Storage settings
    storage_url: str = Field(default="memory://", alias="MEMFLOW_STORAGE_URL")

    # Optional YAML/JSON file with a MemoryConfig
    config_file: Optional[str] = Field(default=None, alias="MEMFLOW_CONFIG_FILE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


class WorkingConfig(BaseModel):
    """Working memory tier."""

    capacity: int = Field(default=20, ge=1)


class ShortTermConfig(BaseModel):
    """Short-term memory tier."""

    capacity: int = Field(default=50, ge=1)
    checkpoint: bool = True


class LongTermConfig(BaseModel):
    """Long-term memory tier."""

    capacity: int = Field(default=500, ge=1)
    maintenance_interval: float = Field(default=300.0, gt=0.0)  # seconds

    # Relevance score weights used by LongTermMemoryStore.search
    w_importance: float = 0.4
    w_retention: float = 0.2
    w_keywords: float = 0.3
    w_topics: float = 0.1


class ProfileConfig(BaseModel):
    """Patient profile store."""

    max_significant_events: int = Field(default=25, ge=1)


class BackupConfig(BaseModel):
    """Backup and recovery."""

    max_records_per_tier: int = Field(default=10, ge=1)
    interval: float = Field(default=300.0, ge=0.0)  # seconds between automatic snapshots
    timeout: float = Field(default=2.0, gt=0.0)  # per storage write


class AdmissionConfig(BaseModel):
    """Importance thresholds for routing items between tiers."""

    working_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    long_term_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    significant_event_threshold: float = Field(default=0.9, ge=0.0, le=1.0)

    high_intensity_emotions: list[str] = Field(
        default_factory=lambda: [
            "angry", "scared", "anxious", "devastated", "grief", "trauma",
        ]
    )


class BoundaryConfig(BaseModel):
    """Conversation boundary detection."""

    idle_timeout: float = Field(default=1800.0, gt=0.0)  # seconds
    greeting_min_items: int = Field(default=3, ge=0)
    detect_restart_phrases: bool = True


class PersistenceConfig(BaseModel):
    """Background persistence writer."""

    write_timeout: float = Field(default=5.0, gt=0.0)  # per queued job
    max_attempts: int = Field(default=2, ge=1)
    queue_size: int = Field(default=256, ge=1)
    dead_letter_size: int = Field(default=100, ge=1)


class MemoryConfig(BaseModel):
    """Main configuration for the memory engine.

    The thresholds and capacities are empirical defaults, so all of them
    can be overridden here.
    """

    working: WorkingConfig = Field(default_factory=WorkingConfig)
    short_term: ShortTermConfig = Field(default_factory=ShortTermConfig)
    long_term: LongTermConfig = Field(default_factory=LongTermConfig)
    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    boundary: BoundaryConfig = Field(default_factory=BoundaryConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "MemoryConfig":
        admission = self.admission
        if admission.long_term_threshold < admission.working_threshold:
            raise ValueError("long_term_threshold must be >= working_threshold")
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> "MemoryConfig":
        """Load configuration from a file."""
        import json
        import yaml

        path = Path(path)
        content = path.read_text()

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        return cls.model_validate(data)

    def to_file(self, path: str | Path) -> None:
        """Save configuration to a file."""
        import json
        import yaml

        path = Path(path)
        data = self.model_dump(mode="json")

        if path.suffix in (".yaml", ".yml"):
            content = yaml.dump(data, default_flow_style=False)
        elif path.suffix == ".json":
            content = json.dumps(data, indent=2)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        path.write_text(content)


def load_config(settings: Optional[Settings] = None) -> MemoryConfig:
    """Build a MemoryConfig, reading ``settings.config_file`` when set."""
    settings = settings or get_settings()
    if settings.config_file:
        return MemoryConfig.from_file(settings.config_file)
    return MemoryConfig()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance."""
    global _settings
    _settings = None
