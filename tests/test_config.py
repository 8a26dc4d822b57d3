"""
Tests for engine configuration loading.
"""

import pytest
import yaml

from lifecycle_engine.config import EngineSettings, load_settings
from lifecycle_engine.models import IntegrationKind


class TestLoadSettings:

    def test_defaults_when_no_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("LIFECYCLE_ENGINE_CONFIG", raising=False)
        monkeypatch.delenv("LIFECYCLE_ENGINE_STORAGE_PATH", raising=False)
        monkeypatch.delenv("LIFECYCLE_ENGINE_AUDIT_DIR", raising=False)

        settings = load_settings()

        assert settings == EngineSettings()
        assert settings.integrations.max_attempts == 3
        assert settings.integrations.mock_mode

    def test_load_yaml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("LIFECYCLE_ENGINE_STORAGE_PATH", raising=False)
        config_file = tmp_path / "engine.yaml"
        config_file.write_text(yaml.safe_dump({
            "storage_path": "/var/lib/lifecycle/state.json",
            "lock_timeout_seconds": 2.5,
            "integrations": {
                "max_attempts": 5,
                "backoff_base_seconds": 3,
                "claim_timeout_seconds": 60,
                "mock_mode": False,
                "providers": {
                    "esignature": {"endpoint": "https://sign.example.com/envelopes", "api_key": "secret"},
                },
            },
        }))

        settings = load_settings(config_file)

        assert settings.storage_path == "/var/lib/lifecycle/state.json"
        assert settings.lock_timeout_seconds == 2.5
        assert settings.integrations.max_attempts == 5
        assert settings.integrations.claim_timeout_seconds == 60
        esignature = settings.integrations.provider(IntegrationKind.ESIGNATURE)
        assert esignature.endpoint == "https://sign.example.com/envelopes"
        assert settings.integrations.provider(IntegrationKind.BACKGROUND_CHECK).endpoint is None

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        config_file = tmp_path / "custom.yaml"
        config_file.write_text(yaml.safe_dump({"conflict_retries": 7}))
        monkeypatch.setenv("LIFECYCLE_ENGINE_CONFIG", str(config_file))

        assert load_settings().conflict_retries == 7

    def test_env_overrides_paths(self, tmp_path, monkeypatch):
        config_file = tmp_path / "engine.yaml"
        config_file.write_text(yaml.safe_dump({"storage_path": "from-file.json"}))
        monkeypatch.setenv("LIFECYCLE_ENGINE_STORAGE_PATH", "from-env.json")
        monkeypatch.setenv("LIFECYCLE_ENGINE_AUDIT_DIR", "audit-env")

        settings = load_settings(config_file)

        assert settings.storage_path == "from-env.json"
        assert settings.audit_dir == "audit-env"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yaml")

    def test_invalid_values_rejected(self, tmp_path):
        config_file = tmp_path / "engine.yaml"
        config_file.write_text(yaml.safe_dump({"integrations": {"max_attempts": 0}}))
        with pytest.raises(ValueError):
            load_settings(config_file)
