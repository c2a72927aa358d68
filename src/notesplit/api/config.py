"""
Application Configuration
=========================

Centralized configuration management using Pydantic Settings.
Environment variables take precedence over config file values.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Metadata store connection settings."""

    model_config = SettingsConfigDict(extra="ignore", validate_assignment=True, populate_by_name=True)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/notesplit.db",
        alias="DB_URL",
        description="SQLAlchemy async connection URL",
    )
    pool_size: int = Field(default=5, description="SQLAlchemy pool size (ignored for SQLite)")
    max_overflow: int = Field(default=10, description="SQLAlchemy pool max overflow (ignored for SQLite)")
    auto_create: bool = Field(
        default=True,
        alias="DB_AUTO_CREATE",
        description="Create missing tables on startup",
    )


class StorageSettings(BaseSettings):
    """Blob store settings."""

    model_config = SettingsConfigDict(extra="ignore", validate_assignment=True, populate_by_name=True)

    blob_dir: Path = Field(default=Path("./data/blobs"), alias="BLOB_DIR", description="Blob root directory")


class UploadSettings(BaseSettings):
    """Upload configuration."""

    model_config = SettingsConfigDict(extra="ignore", validate_assignment=True, populate_by_name=True)

    max_file_size_mb: int = Field(default=20, alias="MAX_FILE_SIZE_MB", description="Max size of a single PDF")
    max_batch_size_mb: int = Field(default=100, alias="MAX_BATCH_SIZE_MB", description="Max size of a batch request")

    @property
    def max_file_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def max_batch_bytes(self) -> int:
        return self.max_batch_size_mb * 1024 * 1024


class ExtractorSettings(BaseSettings):
    """Page classification model settings."""

    model_config = SettingsConfigDict(extra="ignore", validate_assignment=True, populate_by_name=True)

    endpoint: str = Field(
        default="http://localhost:11434/v1",
        alias="EXTRACTOR_ENDPOINT",
        description="OpenAI-compatible base URL of the model endpoint",
    )
    api_key: str = Field(default="", alias="EXTRACTOR_API_KEY", description="API key for the endpoint")
    model: str = Field(default="llama3.2-vision", alias="EXTRACTOR_MODEL", description="Model name")
    mode: str = Field(default="vision", alias="EXTRACTOR_MODE", description="vision | text")
    dpi: int = Field(default=150, alias="EXTRACTOR_DPI", description="Render resolution for vision mode")
    max_concurrency: int = Field(
        default=4,
        alias="EXTRACTOR_MAX_CONCURRENCY",
        description="Max in-flight calls against the endpoint",
    )
    timeout_seconds: float = Field(default=30.0, alias="EXTRACTOR_TIMEOUT_SECONDS", description="Per-call timeout")
    max_retries: int = Field(default=3, alias="EXTRACTOR_MAX_RETRIES", description="Retries after the first attempt")
    retry_base_seconds: float = Field(default=1.0, alias="EXTRACTOR_RETRY_BASE_SECONDS", description="First backoff delay, doubled per retry")
    cache_size: int = Field(default=1024, alias="EXTRACTOR_CACHE_SIZE", description="Cached page classifications")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"vision", "text"}:
            raise ValueError(f"Invalid extractor mode: {v}. Must be 'vision' or 'text'")
        return v_lower


class JobSettings(BaseSettings):
    """Batch job settings."""

    model_config = SettingsConfigDict(extra="ignore", validate_assignment=True, populate_by_name=True)

    timeout_seconds: float = Field(default=1800.0, alias="JOB_TIMEOUT_SECONDS", description="Wall-clock ceiling per job")
    max_concurrent_files: int = Field(
        default=2,
        alias="JOB_MAX_CONCURRENT_FILES",
        description="Files of one batch analysed at the same time",
    )


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from:
    1. Environment variables (highest priority)
    2. config/settings.yaml file
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="notesplit", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="json | human")

    # API
    server_ip: str = Field(default="0.0.0.0", alias="SERVER_IP", description="Bind address")
    server_port: int = Field(default=8000, alias="SERVER_PORT", description="Bind port")
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=list, alias="CORS_ORIGINS", description="Allowed CORS origins")

    # Nested settings (loaded separately)
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    uploads: UploadSettings = Field(default_factory=UploadSettings)
    extractor: ExtractorSettings = Field(default_factory=ExtractorSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("cors_origins", mode="before")
    @classmethod
    def normalize_cors_origins(cls, v: Any) -> list[str]:
        """Allow comma-separated or list-based CORS origin configuration."""
        if v is None:
            return []
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return list(v)

    @classmethod
    def load_yaml_config(cls, config_path: Path | None = None) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if config_path is None:
            config_path = Path(__file__).parent.parent.parent.parent / "config" / "settings.yaml"

        if config_path.exists():
            with open(config_path) as f:
                return yaml.safe_load(f) or {}
        return {}


def _apply_yaml_section(target: BaseSettings, section: dict[str, Any]) -> None:
    """Copy YAML values onto fields the environment left at their defaults."""
    explicitly_set = target.model_fields_set
    for key, value in section.items():
        if key in type(target).model_fields and key not in explicitly_set:
            setattr(target, key, value)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    settings = Settings()

    yaml_config = Settings.load_yaml_config()
    for section in ("db", "storage", "uploads", "extractor", "jobs"):
        if isinstance(yaml_config.get(section), dict):
            _apply_yaml_section(getattr(settings, section), yaml_config[section])

    return settings


settings = get_settings()
