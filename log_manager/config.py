from pathlib import Path

from pydantic import Field, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.exceptions import ConfigurationError

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LogManagerSettings(BaseSettings):
    # Log directory
    log_dir: str = Field(min_length=1)

    # Logging konfiguration
    log_level: str = "WARN"

    # Rotation / retention
    max_number_active_files: PositiveInt = 5
    retention_days: PositiveInt = 10
    numeric_sequence_ordering: bool = False  # False keeps lexicographic cutoff

    # Streaming
    gzip_chunk_size_kb: PositiveInt = 64
    follow_read_chunk_size: PositiveInt = 4096
    default_lines: PositiveInt = 10

    model_config = SettingsConfigDict(
        env_prefix="LOG_MANAGER_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level == "WARN":
            level = "WARNING"
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level '{value}'")
        return level

    @property
    def log_directory(self) -> Path:
        """Returnerer log directory som absolut Path objekt"""
        return Path(self.log_dir).absolute()

    @property
    def retention_millis(self) -> int:
        return self.retention_days * 24 * 60 * 60 * 1000


def load_settings(settings: LogManagerSettings | None = None, **overrides) -> LogManagerSettings:
    """
    Build an immutable settings value for one manager instance.

    Explicit overrides win over an existing settings object, which wins over
    environment variables. Validation problems surface as ConfigurationError.
    """
    try:
        if settings is None:
            return LogManagerSettings(**overrides)
        if overrides:
            return LogManagerSettings(**{**settings.model_dump(), **overrides})
        return settings
    except ValidationError as e:
        raise ConfigurationError(f"Invalid log manager options: {e}") from e
    except TypeError as e:
        raise ConfigurationError(f"Invalid log manager options: {e}") from e
