"""Unit tests for config.py settings."""

import pytest

from config import Settings, get_settings, reset_settings, validate_required_settings


class TestSettings:

    def test_llm_not_configured_by_default(self):
        assert Settings().llm_configured is False

    def test_blank_key_is_not_configured(self):
        assert Settings(openai_api_key="   ").llm_configured is False

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert Settings().llm_configured is True

    def test_candidate_models_are_ordered_and_unique(self):
        settings = Settings(llm_model="gpt-4o", llm_fallback_models=["gpt-4o-mini", "gpt-4o", "gpt-4-turbo"])
        assert settings.candidate_models == ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo"]

    def test_run_loop_defaults(self):
        settings = Settings()
        assert settings.run_poll_interval == 1.0
        assert settings.max_tool_rounds == 5
        assert settings.persistence_max_attempts == 3


class TestGlobalSettings:

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings(self):
        first = get_settings()
        reset_settings()
        assert get_settings() is not first

    def test_validate_allows_missing_key(self):
        assert validate_required_settings() is True

    def test_validate_requires_database_url(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "")
        reset_settings()
        with pytest.raises(ValueError, match="DATABASE_URL"):
            validate_required_settings()
