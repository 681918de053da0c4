"""Tests for policyvault.config Settings."""

import pytest
from pydantic import ValidationError

from policyvault.config import Settings


class TestSettingsDefaults:
    """Default settings load without errors when no env vars set."""

    def test_default_settings_load(self):
        """Settings instantiates successfully with no env vars."""
        settings = Settings()
        assert settings is not None

    def test_default_database_dir(self):
        """DATABASE_DIR defaults to './data'."""
        settings = Settings()
        assert settings.DATABASE_DIR == "./data"

    def test_default_frontend_url(self):
        """FRONTEND_URL defaults to 'http://localhost:3000'."""
        settings = Settings()
        assert settings.FRONTEND_URL == "http://localhost:3000"

    def test_default_server_binding(self):
        settings = Settings()
        assert settings.HOST == "127.0.0.1"
        assert settings.PORT == 3000

    def test_default_ingestion_limits(self):
        settings = Settings()
        assert settings.MAX_CONCURRENT_INGESTIONS == 4
        assert settings.INGESTION_TIMEOUT_SECONDS is None
        assert settings.WORKER_START_METHOD == "spawn"

    def test_default_supervisor_settings(self):
        """Supervisor samples raw load average every second against 70."""
        settings = Settings()
        assert settings.SUPERVISOR_ENABLED is True
        assert settings.LOAD_METRIC == "loadavg"
        assert settings.LOAD_THRESHOLD == 70.0
        assert settings.LOAD_SAMPLE_INTERVAL_SECONDS == 1.0
        assert settings.RESTART_GRACE_SECONDS == 5.0


class TestSettingsEnvOverride:
    """Environment variable overrides are respected."""

    def test_database_dir_override(self, monkeypatch):
        """DATABASE_DIR override via env var is respected."""
        monkeypatch.setenv("DATABASE_DIR", "/custom/data/path")
        settings = Settings()
        assert settings.DATABASE_DIR == "/custom/data/path"

    def test_port_override(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        assert Settings().PORT == 8080

    def test_timeout_override(self, monkeypatch):
        monkeypatch.setenv("INGESTION_TIMEOUT_SECONDS", "12.5")
        assert Settings().INGESTION_TIMEOUT_SECONDS == 12.5

    def test_supervisor_disabled(self, monkeypatch):
        monkeypatch.setenv("SUPERVISOR_ENABLED", "false")
        assert Settings().SUPERVISOR_ENABLED is False

    def test_load_metric_override(self, monkeypatch):
        monkeypatch.setenv("LOAD_METRIC", "loadavg_percent")
        monkeypatch.setenv("LOAD_THRESHOLD", "85")
        settings = Settings()
        assert settings.LOAD_METRIC == "loadavg_percent"
        assert settings.LOAD_THRESHOLD == 85.0

    def test_unknown_load_metric_rejected(self, monkeypatch):
        monkeypatch.setenv("LOAD_METRIC", "cpu_temperature")
        with pytest.raises(ValidationError):
            Settings()

    def test_unknown_start_method_rejected(self, monkeypatch):
        monkeypatch.setenv("WORKER_START_METHOD", "threads")
        with pytest.raises(ValidationError):
            Settings()
