"""Tests for imageharvest.core.config: configuration management.

Tests cover:
- Default values for queue, retry and provider settings.
- Environment variable overrides via the IMAGEHARVEST_ prefix.
- Un-prefixed credential variable names.
- Automatic data directory creation on initialisation.
- Pydantic validation constraints.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from imageharvest.core.config import HarvestConfig


class TestConfigDefaults:
    """Verify that HarvestConfig provides sensible defaults."""

    def test_queue_defaults(self, test_config: HarvestConfig):
        """Queue estimate is 30 seconds per item with a 15 minute item timeout."""
        assert test_config.average_processing_seconds == 30.0
        assert test_config.queue_item_timeout_seconds == 900.0

    def test_retry_defaults(self, test_config: HarvestConfig):
        """Flaky providers get 2 attempts, slow models 3."""
        assert test_config.flaky_max_attempts == 2
        assert test_config.slow_model_max_attempts == 3

    def test_default_backoff(self, temp_dir: Path, clean_env):
        """Default linear backoff unit is 5 seconds."""
        cfg = HarvestConfig(_env_file=None, data_dir=temp_dir / "data")
        assert cfg.retry_backoff_seconds == 5.0

    def test_credentials_default_to_none(self, test_config: HarvestConfig):
        assert test_config.openai_api_key is None
        assert test_config.dezgo_api_key is None
        assert test_config.google_cloud_project_id is None
        assert test_config.google_application_credentials is None

    def test_optional_stores_disabled(self, test_config: HarvestConfig):
        """SQLite word and generation stores are off unless configured."""
        assert test_config.word_db_path is None
        assert test_config.generation_db_path is None
        assert test_config.providers_file is None

    def test_default_server_port(self, test_config: HarvestConfig):
        assert test_config.server_port == 8080


class TestConfigEnvironment:
    """Environment variables override defaults."""

    def test_prefixed_override(self, monkeypatch, temp_dir: Path, clean_env):
        monkeypatch.setenv("IMAGEHARVEST_AVERAGE_PROCESSING_SECONDS", "12.5")
        monkeypatch.setenv("IMAGEHARVEST_FLAKY_MAX_ATTEMPTS", "4")
        cfg = HarvestConfig(_env_file=None, data_dir=temp_dir / "data")
        assert cfg.average_processing_seconds == 12.5
        assert cfg.flaky_max_attempts == 4

    def test_unprefixed_credentials(self, monkeypatch, temp_dir: Path, clean_env):
        """Provider SDK variable names are accepted without the prefix."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("DEZGO_API_KEY", "dz-test")
        cfg = HarvestConfig(_env_file=None, data_dir=temp_dir / "data")
        assert cfg.openai_api_key == "sk-test"
        assert cfg.dezgo_api_key == "dz-test"

    def test_prefixed_credentials(self, monkeypatch, temp_dir: Path, clean_env):
        monkeypatch.setenv("IMAGEHARVEST_GOOGLE_CLOUD_PROJECT_ID", "my-project")
        cfg = HarvestConfig(_env_file=None, data_dir=temp_dir / "data")
        assert cfg.google_cloud_project_id == "my-project"


class TestConfigDirectories:
    def test_data_dir_created(self, temp_dir: Path, clean_env):
        """data_dir is created on initialisation."""
        data_dir = temp_dir / "nested" / "data"
        HarvestConfig(_env_file=None, data_dir=data_dir)
        assert data_dir.is_dir()


class TestConfigValidation:
    """Pydantic constraints reject invalid values."""

    def test_rejects_zero_processing_estimate(self, temp_dir: Path, clean_env):
        with pytest.raises(ValidationError):
            HarvestConfig(_env_file=None, data_dir=temp_dir, average_processing_seconds=0)

    def test_rejects_zero_attempts(self, temp_dir: Path, clean_env):
        with pytest.raises(ValidationError):
            HarvestConfig(_env_file=None, data_dir=temp_dir, flaky_max_attempts=0)

    def test_rejects_privileged_port(self, temp_dir: Path, clean_env):
        with pytest.raises(ValidationError):
            HarvestConfig(_env_file=None, data_dir=temp_dir, server_port=80)

    def test_rejects_unknown_log_level(self, temp_dir: Path, clean_env):
        with pytest.raises(ValidationError):
            HarvestConfig(_env_file=None, data_dir=temp_dir, log_level="TRACE")
