import pytest
from pydantic import ValidationError

from jobboard.config import Settings, get_settings, reset_settings_cache


class TestSecrets:
    def test_missing_secrets_are_generated(self):
        settings = Settings()
        assert settings.jwt_secret
        assert settings.envelope_key
        assert settings.jwt_secret != settings.envelope_key

    def test_generated_secrets_are_not_reused(self):
        assert Settings().jwt_secret != Settings().jwt_secret

    def test_identical_secrets_rejected(self):
        with pytest.raises(ValidationError):
            Settings(jwt_secret="same-secret", envelope_key="same-secret")


def test_from_env_reads_environment(monkeypatch):
    monkeypatch.setenv("CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("REFRESH_COOKIE_NAME", "__Host-refresh")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example,")
    monkeypatch.setenv("USE_MEMORY_STORE", "true")

    settings = Settings.from_env()

    assert settings.cache_ttl_seconds == 60
    assert settings.refresh_cookie_name == "__Host-refresh"
    assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]
    assert settings.use_memory_store is True


def test_get_settings_is_cached_until_reset(monkeypatch):
    reset_settings_cache()
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("CACHE_TTL_SECONDS", "42")
    reset_settings_cache()
    assert get_settings().cache_ttl_seconds == 42
    reset_settings_cache()
