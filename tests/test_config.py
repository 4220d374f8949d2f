"""Tests for YAML configuration loading."""

import pytest

from readtrack.config import CONFIG_ENV, Settings, load_settings, settings_from_dict


class TestConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings == Settings()
        assert settings.tracker.idle_timeout_ms == 120000
        assert settings.tracker.min_session_ms == 5000

    def test_yaml_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "tracker:\n"
            "  idle_timeout_ms: 60000\n"
            "storage:\n"
            "  backend: memory\n"
            "logging:\n"
            "  level: DEBUG\n"
        )
        settings = load_settings(path)
        assert settings.tracker.idle_timeout_ms == 60000
        assert settings.tracker.autosave_interval_ms == 30000
        assert settings.storage.backend == "memory"
        assert settings.log_level == "DEBUG"

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("tracker:\n  page_noise_ms: 1500\n")
        monkeypatch.setenv(CONFIG_ENV, str(path))
        assert load_settings().tracker.page_noise_ms == 1500

    def test_rejects_bad_values(self):
        with pytest.raises(ValueError):
            settings_from_dict({"tracker": {"idle_timeout_ms": 0}})
        with pytest.raises(ValueError):
            settings_from_dict({"storage": {"backend": "indexeddb"}})
        with pytest.raises(TypeError):
            settings_from_dict({"tracker": {"unknown_key": 1}})
