"""Tests for SLAPolicyManager: YAML loading and reload."""

from __future__ import annotations

import pytest

from src.config import Priority
from src.core import ConfigurationException
from src.workitems.infrastructure import SLAPolicyManager


@pytest.fixture
def policy_file(tmp_path):
    path = tmp_path / "sla_policy.yaml"
    path.write_text("resolution_minutes:\n  critical: 60\n  high: 120\n")
    return path


class TestLoad:
    def test_missing_file_uses_defaults(self, tmp_path):
        manager = SLAPolicyManager()
        policy = manager.load(tmp_path / "absent.yaml")
        assert policy.get_resolution_minutes(Priority.MEDIUM) == 1440
        assert manager.get_policy() is policy

    def test_values_from_file(self, policy_file):
        policy = SLAPolicyManager().load(policy_file)
        assert policy.get_resolution_minutes(Priority.CRITICAL) == 60
        assert policy.get_resolution_minutes(Priority.HIGH) == 120
        assert policy.get_resolution_minutes(Priority.LOW) == 4320

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert SLAPolicyManager().load(path).get_resolution_minutes("critical") == 240

    @pytest.mark.parametrize(
        "content",
        [
            "resolution_minutes:\n  critical: -5\n",
            "resolution_minutes:\n  urgent: 10\n",
            "- just\n- a list\n",
            "resolution_minutes: [unclosed\n",
        ],
        ids=["negative", "unknown-priority", "not-a-mapping", "bad-yaml"],
    )
    def test_invalid_file_rejected(self, tmp_path, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationException) as exc:
            SLAPolicyManager().load(path)
        assert exc.value.details["path"] == str(path)

    def test_not_loaded(self):
        with pytest.raises(ConfigurationException):
            SLAPolicyManager().get_policy()

    def test_watch_requires_load(self):
        with pytest.raises(ConfigurationException):
            SLAPolicyManager().start_watching()


class TestReload:
    def test_reload_picks_up_changes(self, policy_file):
        manager = SLAPolicyManager()
        manager.load(policy_file)
        policy_file.write_text("resolution_minutes:\n  critical: 30\n")

        assert manager.reload() is True
        assert manager.get_policy().get_resolution_minutes(Priority.CRITICAL) == 30

    def test_broken_reload_keeps_previous_policy(self, policy_file):
        manager = SLAPolicyManager()
        manager.load(policy_file)
        policy_file.write_text("resolution_minutes:\n  critical: 0\n")

        assert manager.reload() is False
        assert manager.get_policy().get_resolution_minutes(Priority.CRITICAL) == 60

    def test_reload_before_load(self):
        assert SLAPolicyManager().reload() is False

    def test_watching_lifecycle(self, policy_file):
        manager = SLAPolicyManager()
        manager.load(policy_file)
        manager.start_watching()
        try:
            assert manager.is_watching
        finally:
            manager.stop_watching()
        assert not manager.is_watching

    def test_watch_skipped_for_missing_file(self, tmp_path):
        manager = SLAPolicyManager()
        manager.load(tmp_path / "absent.yaml")
        manager.start_watching()
        assert not manager.is_watching
