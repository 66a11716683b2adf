"""Tests for src.config: settings and enum vocabularies."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from src.config import (
    PRIORITY_ORDER, SEVERITY_ORDER, Priority, Settings, Severity, TrendInterval,
    get_settings,
)


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings()
        assert settings.app_name == "workitem-engine"
        assert settings.database_url.startswith("postgresql+asyncpg://")
        assert settings.operation_timeout_seconds == 10.0
        assert settings.sla_auto_assign is False
        assert settings.due_soon_hours == 24
        assert settings.default_page_size == 20
        assert settings.max_page_size == 100

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./env.db")
        monkeypatch.setenv("SLA_AUTO_ASSIGN", "true")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = Settings()
        assert settings.database_url == "sqlite+aiosqlite:///./env.db"
        assert settings.sla_auto_assign is True
        assert settings.log_level == "DEBUG"

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            Settings(environment="qa")

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="loud")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(operation_timeout_seconds=0)

    def test_timeout_can_be_disabled(self):
        assert Settings(operation_timeout_seconds=None).operation_timeout_seconds is None

    def test_default_page_size_within_max(self):
        with pytest.raises(ValidationError):
            Settings(default_page_size=50, max_page_size=25)

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestVocabularies:
    def test_priority_rank_follows_order(self):
        assert [p.rank for p in PRIORITY_ORDER] == sorted(p.rank for p in Priority)
        assert Priority.CRITICAL.rank > Priority.LOW.rank

    def test_trend_intervals(self):
        assert [i.value for i in TrendInterval] == ["hour", "day", "week", "month"]

    def test_severity_order_is_complete(self):
        assert set(SEVERITY_ORDER) == set(Severity)
        assert SEVERITY_ORDER[-1] is Severity.CRITICAL
