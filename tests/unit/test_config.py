"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from workshop.core.config import MAX_PERMISSION_CACHE_TTL, Settings


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("PERMISSION_CACHE_ENABLED", "JWT_AUDIENCE", "DEFAULT_LOCALE"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)

        assert settings.permission_cache_enabled is False
        assert settings.jwt_audience == "authenticated"
        assert settings.default_locale == "en"
        assert settings.permission_cache_ttl_seconds <= MAX_PERMISSION_CACHE_TTL

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PERMISSION_CACHE_TTL_SECONDS", "30")
        monkeypatch.setenv("AUTHORIZATION_TIMEOUT_MS", "500")
        settings = Settings(_env_file=None)

        assert settings.permission_cache_ttl_seconds == 30
        assert settings.authorization_timeout_ms == 500

    @pytest.mark.parametrize("ttl", [0, -5, MAX_PERMISSION_CACHE_TTL + 1])
    def test_cache_ttl_is_bounded(self, ttl):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, permission_cache_ttl_seconds=ttl)

    def test_ttl_upper_bound_is_accepted(self):
        settings = Settings(_env_file=None, permission_cache_ttl_seconds=MAX_PERMISSION_CACHE_TTL)
        assert settings.permission_cache_ttl_seconds == MAX_PERMISSION_CACHE_TTL

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, authorization_timeout_ms=0)

    def test_cors_origins_list(self):
        settings = Settings(_env_file=None, cors_origins="https://a.example, https://b.example,")
        assert settings.cors_origins_list == ["https://a.example", "https://b.example"]
