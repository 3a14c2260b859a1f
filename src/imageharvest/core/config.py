"""Configuration management for the Image Harvest generation pipeline.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the IMAGEHARVEST_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (IMAGEHARVEST_* prefix)
2. .env file in the project root
3. Default values defined in HarvestConfig

Provider credentials additionally accept the un-prefixed names used by the
provider SDKs themselves (``OPENAI_API_KEY``, ``DEZGO_API_KEY``,
``GOOGLE_CLOUD_PROJECT_ID``, ``GOOGLE_APPLICATION_CREDENTIALS``), so an
existing deployment environment works without renaming anything.

Example .env file:
    IMAGEHARVEST_WORDS_DIR=data/words
    IMAGEHARVEST_AVERAGE_PROCESSING_SECONDS=30
    DEZGO_API_KEY=...
    OPENAI_API_KEY=...

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.

Usage Example
-------------
    from imageharvest.core.config import config

    print(config.average_processing_seconds)
    print(config.words_dir)

Queue and Retry Settings
------------------------
- average_processing_seconds: Fixed per-item estimate used for queue wait times
- queue_item_timeout_seconds: Upper bound on one queued generation (None disables)
- retry_backoff_seconds: Linear backoff unit; attempt N waits N * unit
- flaky_max_attempts / slow_model_max_attempts: Total attempts for retryable failures

See Also
--------
- HarvestConfig: Full configuration class documentation
- imageharvest.core.credentials: Reads provider secrets from this object
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarvestConfig(BaseSettings):
    """Main configuration for the Image Harvest pipeline.

    Values are loaded from environment variables with the IMAGEHARVEST_ prefix,
    with fallback to defaults defined here. ``data_dir`` is created on
    initialization if it does not exist.

    Attributes
    ----------
    Storage:
        data_dir : Path
            Root directory for local data files
        words_dir : Path
            Directory of word category files (one candidate per line)
        word_db_path : Path | None
            Optional SQLite word-type database (takes precedence over words_dir)
        providers_file : Path | None
            Optional JSON provider table overriding the built-in one
        generation_db_path : Path | None
            Optional SQLite file for generation records

    Queue:
        average_processing_seconds : float
            Fixed estimate of one generation's duration
        queue_item_timeout_seconds : float | None
            Queue-level timeout for a single generation

    Providers:
        provider_config_ttl_seconds : float
            TTL for cached provider configuration lookups
        retry_backoff_seconds : float
            Linear backoff unit between attempts
        flaky_max_attempts : int
            Total attempts for providers flagged as flaky
        slow_model_max_attempts : int
            Total attempts for slow models (redshift, abyss)
        max_payload_bytes : int
            Largest accepted image payload
        word_cache_size : int
            Maximum number of cached word lookups

    Notes
    -----
    - Configuration is immutable after initialization
    - Secrets are never logged
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="IMAGEHARVEST_",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for local data files",
    )
    words_dir: Path = Field(
        default=Path("data/words"),
        description="Directory of word category files used by ${word} variables",
    )
    word_db_path: Path | None = Field(
        default=None,
        description="SQLite word-type database (overrides words_dir when set)",
    )
    providers_file: Path | None = Field(
        default=None,
        description="JSON provider table (overrides the built-in table when set)",
    )
    generation_db_path: Path | None = Field(
        default=None,
        description="SQLite file for generation records (disabled when unset)",
    )

    # Queue settings
    average_processing_seconds: float = Field(
        default=30.0,
        description="Fixed per-item estimate used for queue wait times",
        gt=0,
    )
    queue_item_timeout_seconds: float | None = Field(
        default=900.0,
        description="Queue-level timeout for one generation (None disables)",
    )

    # Provider settings
    provider_config_ttl_seconds: float = Field(default=60.0, ge=0)
    retry_backoff_seconds: float = Field(
        default=5.0,
        description="Linear backoff unit: attempt N waits N * retry_backoff_seconds",
        ge=0,
    )
    flaky_max_attempts: int = Field(default=2, ge=1, le=10)
    slow_model_max_attempts: int = Field(default=3, ge=1, le=10)
    max_payload_bytes: int = Field(
        default=20 * 1024 * 1024,
        description="Largest accepted image payload (20MB covers 2048x2048 PNG)",
    )
    word_cache_size: int = Field(default=100, ge=1)

    # Provider credentials
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("IMAGEHARVEST_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    dezgo_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("IMAGEHARVEST_DEZGO_API_KEY", "DEZGO_API_KEY"),
    )
    google_cloud_project_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "IMAGEHARVEST_GOOGLE_CLOUD_PROJECT_ID", "GOOGLE_CLOUD_PROJECT_ID"
        ),
    )
    google_application_credentials: str | None = Field(
        default=None,
        description="Service-account key file path or inline JSON",
        validation_alias=AliasChoices(
            "IMAGEHARVEST_GOOGLE_APPLICATION_CREDENTIALS", "GOOGLE_APPLICATION_CREDENTIALS"
        ),
    )
    google_cloud_location: str = Field(default="us-central1")

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(default=8080, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create the data directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)
        self.data_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance
config = HarvestConfig()
