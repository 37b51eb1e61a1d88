"""Configuration management for Pixell Deploy."""

from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pixell_deploy.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Agent configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="PIXELL_DEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    home_dir: Path = Field(
        default_factory=lambda: Path.home() / ".pixell-deploy",
        description="Root directory for the cache, journal and applications",
    )
    cache_dir: Optional[Path] = Field(None, description="Package cache root (default: <home>/Files)")
    journal_path: Optional[Path] = Field(None, description="Journal file (default: <home>/DeploymentJournal.jsonl)")
    applications_dir: Optional[Path] = Field(None, description="Extraction root (default: <home>/Applications)")

    # Downloads
    max_download_attempts: int = Field(5, description="Download attempts before giving up")
    download_attempt_backoff_seconds: float = Field(10.0, description="Sleep between download attempts")
    request_timeout_seconds: float = Field(100.0, description="Per-request socket timeout")
    github_page_size: int = Field(1000, description="Tags requested per page from GitHub feeds")
    github_max_pages: int = Field(100, description="Upper bound on tag pages fetched per lookup")
    min_free_disk_space_mb: int = Field(500, description="Free space required before downloading")
    skip_free_disk_space_check: bool = Field(False, description="Disable the free space check")

    # Observability
    log_level: str = Field("INFO", description="Diagnostic log level")
    log_format: str = Field("console", description="console or json")

    @field_validator("max_download_attempts", "github_page_size", "github_max_pages")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be at least 1, got: {v}")
        return v

    @field_validator("download_attempt_backoff_seconds", "request_timeout_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"must not be negative, got: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"must be a standard logging level, got: {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError(f"must be 'console' or 'json', got: {v}")
        return v

    @property
    def package_cache_dir(self) -> Path:
        return self.cache_dir or self.home_dir / "Files"

    @property
    def journal_file(self) -> Path:
        return self.journal_path or self.home_dir / "DeploymentJournal.jsonl"

    @property
    def applications_root(self) -> Path:
        return self.applications_dir or self.home_dir / "Applications"


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, failing fast with a ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
