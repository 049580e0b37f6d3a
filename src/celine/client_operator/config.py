"""Operator configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Operator settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CELINE_OPERATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    service_name: str = "celine-client-operator"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    # Reconciliation
    poll_interval_seconds: float = Field(default=60.0, gt=0)
    concurrency: int = Field(default=4, ge=1)

    # Storage
    manifests_dir: Path = Field(default=Path("clients"))
    secrets_dir: Path = Field(default=Path("secrets"))

    # Audit
    audit_enabled: bool = True


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Alias for the module-level settings singleton."""
    return settings
