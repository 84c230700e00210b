"""Tests for persistent settings."""

import json

import pytest

from tarkovmonitor.settings import DEFAULTS, LOGS_PATH_ENV, Settings


class TestSettings:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv(LOGS_PATH_ENV, raising=False)
        settings = Settings(tmp_path / "settings.json")
        assert settings.get("poll_interval") == 30.0
        assert settings.get("backfill") is True
        assert settings.get("log_types") == ["application", "notifications"]
        assert settings.get("logs_path") is None

    def test_file_values_override_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"poll_interval": 5, "backfill": False}))

        settings = Settings(path)

        assert settings.get("poll_interval") == 5
        assert settings.get("backfill") is False
        assert settings.get("flush_interval") == DEFAULTS["flush_interval"]

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        assert Settings(path).get("poll_interval") == 30.0

    def test_bad_values_and_unknown_keys_ignored(self, tmp_path):
        """Wrongly typed values keep their default; unknown keys are dropped."""
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"poll_interval": "fast", "flush_interval": True, "colour": "red"}))

        settings = Settings(path)

        assert settings.get("poll_interval") == 30.0
        assert settings.get("flush_interval") == 1.0
        with pytest.raises(KeyError):
            settings.get("colour")

    def test_update_persists_only_changes(self, tmp_path, monkeypatch):
        monkeypatch.delenv(LOGS_PATH_ENV, raising=False)
        path = tmp_path / "nested" / "settings.json"
        Settings(path).update({"logs_path": "/games/eft/Logs", "backfill": True})

        assert json.loads(path.read_text()) == {"logs_path": "/games/eft/Logs"}
        assert Settings(path).get("logs_path") == "/games/eft/Logs"

    def test_update_without_save(self, tmp_path):
        path = tmp_path / "settings.json"
        settings = Settings(path)
        settings.update({"poll_interval": 1.0}, save=False)
        assert settings.get("poll_interval") == 1.0
        assert not path.exists()

    def test_update_rejects_bad_value(self, tmp_path):
        settings = Settings(tmp_path / "settings.json")
        with pytest.raises(ValueError):
            settings.update({"poll_interval": 2.0, "log_types": "traces"})
        assert settings.get("poll_interval") == 30.0

    def test_environment_overrides_logs_path(self, tmp_path, monkeypatch):
        settings = Settings(tmp_path / "settings.json")
        settings.update({"logs_path": "/from/file"})
        monkeypatch.setenv(LOGS_PATH_ENV, "/from/env")
        assert settings.get("logs_path") == "/from/env"

    def test_returned_lists_are_copies(self, tmp_path):
        settings = Settings(tmp_path / "settings.json")
        settings.get("log_types").append("traces")
        assert settings.get("log_types") == ["application", "notifications"]
        assert DEFAULTS["log_types"] == ["application", "notifications"]
