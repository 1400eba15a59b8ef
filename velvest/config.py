"""
Velvest Configuration Module

Centralized configuration management using pydantic-settings.
Loads settings from environment variables (VELVEST_*) and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Find the project root (where .env is located)
_PROJECT_ROOT = Path(__file__).parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VELVEST_",
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    # ==========================================================================
    # Analysis Configuration
    # ==========================================================================
    suspicious_ports: set[int] = Field(
        default_factory=lambda: {21, 22, 23, 3306, 3389},
        description="TCP destination ports flagged as suspicious",
    )
    low_ttl_threshold: int = Field(
        default=10,
        description="Records with a TTL below this value are flagged",
    )
    log_capacity: int = Field(
        default=100,
        description="Maximum entries kept in the activity log",
    )
    top_n: int = Field(
        default=5,
        description="Number of sources in the top talkers list",
    )
    default_filter: str = Field(
        default="",
        description="Activity log filter applied at startup",
    )
    queue_size: int = Field(
        default=10000,
        description="Maximum records waiting in the ingestion queue",
    )

    # ==========================================================================
    # Logging Configuration
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )

    @field_validator("log_capacity", "top_n", "queue_size")
    @classmethod
    def ensure_positive(cls, v: int) -> int:
        """Reject sizes that would make a bounded structure useless."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("suspicious_ports")
    @classmethod
    def ensure_valid_ports(cls, v: set[int]) -> set[int]:
        """Ensure every denylisted port is a valid TCP port."""
        bad = sorted(p for p in v if not 0 <= p <= 65535)
        if bad:
            raise ValueError(f"invalid port numbers: {bad}")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience alias
settings = get_settings()
