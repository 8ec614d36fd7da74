"""
Configuration tests - environment overrides and validation.
"""

from src.core import config
from src.core.registry import CaptureRegistry

FP1 = bytes([1]) * 32


class TestConfig:
    """Test environment-driven settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SEQUENCE_START", raising=False)
        monkeypatch.delenv("EVENT_LOG_ENABLED", raising=False)
        assert config.get_sequence_start() == 1
        assert config.event_log_enabled() is True
        assert config.validate_config() == []

    def test_sequence_start_seeds_new_registry(self, monkeypatch, db_path):
        monkeypatch.setenv("SEQUENCE_START", "500")
        registry = CaptureRegistry(db_path=db_path)
        registry.register(FP1, 1, "DAC", "Site", "", caller="deployer")
        assert registry.get_record(1).created == 500

    def test_sequence_start_ignored_for_existing_registry(self, monkeypatch, db_path):
        CaptureRegistry(db_path=db_path)
        monkeypatch.setenv("SEQUENCE_START", "500")
        assert CaptureRegistry(db_path=db_path).current_sequence() == 1

    def test_invalid_sequence_start(self, monkeypatch):
        monkeypatch.setenv("SEQUENCE_START", "zero")
        assert config.validate_config() == ["Invalid SEQUENCE_START: zero"]

        monkeypatch.setenv("SEQUENCE_START", "0")
        assert config.validate_config() == ["SEQUENCE_START must be >= 1"]

    def test_db_path_from_environment(self, monkeypatch, tmp_path):
        target = str(tmp_path / "nested" / "env.db")
        monkeypatch.setenv("DB_PATH", target)
        registry = CaptureRegistry()
        assert registry.db_path == target
        assert (tmp_path / "nested" / "env.db").exists()

    def test_empty_db_path(self, monkeypatch):
        monkeypatch.setenv("DB_PATH", "  ")
        assert "DB_PATH must not be empty" in config.validate_config()

    def test_cors_origins(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
        assert config.get_cors_origins() == ["https://a.example", "https://b.example"]

    def test_debug_and_event_log_read_at_call_time(self, monkeypatch):
        monkeypatch.setenv("DEBUG", "false")
        monkeypatch.setenv("EVENT_LOG_ENABLED", "FALSE")
        assert config.debug_enabled() is False
        assert config.event_log_enabled() is False

        monkeypatch.setenv("DEBUG", "true")
        assert config.debug_enabled() is True
        assert not hasattr(config, "DEBUG")
