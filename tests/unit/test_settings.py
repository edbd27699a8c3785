"""Unit tests for application settings and service wiring."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from src.inspector_dispatch.infrastructure.cache.memory_cache import InMemorySearchCache, NullSearchCache
from src.inspector_dispatch.infrastructure.cache.redis_cache import RedisSearchCache
from src.inspector_dispatch.infrastructure.services import (
    InMemoryServiceFactory,
    build_eligibility_evaluator,
    build_search_cache
)
from src.inspector_dispatch.presentation.api.config import Settings


class TestSettings:
    """Test cases for Settings."""

    def test_defaults(self):
        """Test default windows and limits."""
        settings = Settings(_env_file=None)

        assert settings.cache_sliding_expiration_seconds == 300
        assert settings.cache_absolute_expiration_seconds == 1800
        assert settings.cache_compression_threshold_bytes == 100 * 1024
        assert settings.search_timeout_seconds == 30.0
        assert settings.compliance_window_days == 90
        assert settings.api_prefix == "/api/v1"

    def test_cors_lists_split(self):
        """Test comma-separated CORS values become lists."""
        settings = Settings(_env_file=None, allowed_origins="http://a.test, http://b.test")

        assert settings.allowed_origins == ["http://a.test", "http://b.test"]

    def test_sliding_cannot_exceed_absolute(self):
        """Test the sliding window must fit inside the absolute ceiling."""
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                cache_sliding_expiration_seconds=600,
                cache_absolute_expiration_seconds=300
            )

    def test_environment_overrides(self, monkeypatch):
        """Test settings are read from the environment."""
        monkeypatch.setenv("CACHE_BACKEND", "none")
        monkeypatch.setenv("COMPLIANCE_WINDOW_DAYS", "60")

        settings = Settings(_env_file=None)

        assert settings.cache_backend == "none"
        assert settings.compliance_window_days == 60


class TestServiceWiring:
    """Test cases for building collaborators from settings."""

    @pytest.mark.parametrize("backend, cache_type", [
        ("memory", InMemorySearchCache),
        ("none", NullSearchCache),
        ("redis", RedisSearchCache),
    ])
    def test_build_search_cache(self, backend, cache_type):
        """Test the configured cache backend is built."""
        settings = Settings(_env_file=None, cache_backend=backend)

        assert isinstance(build_search_cache(settings), cache_type)

    def test_build_eligibility_evaluator(self):
        """Test eligibility windows come from settings."""
        settings = Settings(_env_file=None, compliance_window_days=45, mobilization_horizon_days=7)

        evaluator = build_eligibility_evaluator(settings)

        assert evaluator.compliance_window == timedelta(days=45)
        assert evaluator.scheduling_horizon == timedelta(days=7)
        assert evaluator.backdate_tolerance == timedelta(days=1)

    def test_injected_empty_cache_is_kept(self):
        """Test an injected cache is used even while it is empty."""
        cache = InMemorySearchCache()
        factory = InMemoryServiceFactory(Settings(_env_file=None, storage_backend="memory"), search_cache=cache)

        assert factory.search_cache is cache
