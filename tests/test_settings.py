"""
Tests for settings module.

Tests settings validation, derived values and environment variable loading.
"""
from __future__ import annotations

import pytest

from registry_v2.settings import USER_AGENT, Settings, create_settings_from_env


class TestSettings:
    """Test Settings dataclass validation."""

    def test_minimal_valid_settings(self):
        """Test creating settings with only the registry URL."""
        settings = Settings(registry_url="localhost:5000")
        assert settings.registry_url == "localhost:5000"
        assert settings.registry_insecure is False
        assert settings.http_timeout_s == 30.0
        assert settings.connect_timeout_s == 5.0
        assert settings.chunk_retry == 0
        assert settings.credentials is None
        assert settings.effective_user_agent == USER_AGENT

    def test_base_url_defaults_to_https(self):
        assert Settings(registry_url="ghcr.io").base_url == "https://ghcr.io"

    def test_insecure_base_url_uses_http(self):
        settings = Settings(registry_url="localhost:5000", registry_insecure=True)
        assert settings.base_url == "http://localhost:5000"

    def test_explicit_scheme_is_kept(self):
        settings = Settings(registry_url="http://localhost:5000/", registry_insecure=False)
        assert settings.base_url == "http://localhost:5000"

    def test_credentials_pair(self):
        settings = Settings(registry_url="ghcr.io", registry_user="u", registry_pass="p")
        assert settings.credentials == ("u", "p")

    def test_custom_user_agent(self):
        settings = Settings(registry_url="ghcr.io", user_agent="custom-ua/1.0")
        assert settings.effective_user_agent == "custom-ua/1.0"

    def test_empty_registry_url_raises(self):
        with pytest.raises(ValueError, match="registry_url is required"):
            Settings(registry_url="")

    def test_invalid_registry_url_format_raises(self):
        with pytest.raises(ValueError, match="Invalid registry_url format"):
            Settings(registry_url="not a url")

        with pytest.raises(ValueError, match="Invalid registry_url format"):
            Settings(registry_url="://missing-scheme")

    def test_half_credentials_raise(self):
        with pytest.raises(ValueError, match="must be given together"):
            Settings(registry_url="ghcr.io", registry_user="u")

    def test_missing_ca_file_raises(self, tmp_path):
        with pytest.raises(ValueError, match="ca_cert_path does not exist"):
            Settings(registry_url="ghcr.io", ca_cert_path=str(tmp_path / "missing.pem"))

    def test_non_positive_timeouts_raise(self):
        with pytest.raises(ValueError, match="http_timeout_s must be positive"):
            Settings(registry_url="ghcr.io", http_timeout_s=0)
        with pytest.raises(ValueError, match="connect_timeout_s must be positive"):
            Settings(registry_url="ghcr.io", connect_timeout_s=-1)

    def test_negative_chunk_retry_raises(self):
        with pytest.raises(ValueError, match="chunk_retry must be non-negative"):
            Settings(registry_url="ghcr.io", chunk_retry=-1)

    def test_settings_are_frozen(self):
        settings = Settings(registry_url="ghcr.io")
        with pytest.raises(Exception):
            settings.registry_url = "other"  # type: ignore[misc]


class TestSettingsFromEnv:
    """Test environment variable loading."""

    def test_loads_from_env(self, monkeypatch, tmp_path):
        ca = tmp_path / "ca.pem"
        ca.write_text("placeholder")
        monkeypatch.setenv("REGV2_REGISTRY_URL", "localhost:5000")
        monkeypatch.setenv("REGV2_REGISTRY_INSECURE", "true")
        monkeypatch.setenv("REGV2_REGISTRY_USERNAME", "alice")
        monkeypatch.setenv("REGV2_REGISTRY_PASSWORD", "secret")
        monkeypatch.setenv("REGV2_USER_AGENT", "tool/2.0")
        monkeypatch.setenv("REGV2_CA_CERT", str(ca))
        monkeypatch.setenv("REGV2_HTTP_TIMEOUT", "12.5")
        monkeypatch.setenv("REGV2_CONNECT_TIMEOUT", "2")
        monkeypatch.setenv("REGV2_CHUNK_RETRY", "3")

        settings = create_settings_from_env()

        assert settings.base_url == "http://localhost:5000"
        assert settings.credentials == ("alice", "secret")
        assert settings.effective_user_agent == "tool/2.0"
        assert settings.ca_cert_path == str(ca)
        assert settings.http_timeout_s == 12.5
        assert settings.connect_timeout_s == 2.0
        assert settings.chunk_retry == 3

    def test_missing_url_raises(self, monkeypatch):
        monkeypatch.delenv("REGV2_REGISTRY_URL", raising=False)
        with pytest.raises(ValueError, match="REGV2_REGISTRY_URL"):
            create_settings_from_env()

    def test_fresh_instance_each_call(self):
        assert create_settings_from_env() is not create_settings_from_env()
