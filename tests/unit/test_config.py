"""Tests for KUBEVIGIL_* environment configuration loading."""

from __future__ import annotations

import pytest

from kubevigil.config import load_config


class TestLoadConfig:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("LOG_LEVEL", "API_PORT", "WORKERS_PER_KIND", "RETRY_MIN_SECONDS", "RETRY_MAX_SECONDS"):
            monkeypatch.delenv(f"KUBEVIGIL_{key}", raising=False)
        config = load_config()

        assert config.log.level == "info"
        assert config.api.port == 8080
        assert config.controller.workers_per_kind == 2
        assert config.controller.retry_min_seconds == 10
        assert config.controller.retry_max_seconds == 30
        assert config.controller.min_check_interval_seconds == 10
        assert config.notifications.default_interval_seconds == 60
        assert config.rules.group == "kubevigil.io"
        assert config.rules.version == "v1"

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEVIGIL_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("KUBEVIGIL_API_PORT", "9090")
        monkeypatch.setenv("KUBEVIGIL_RULE_GROUP", "policy.example.com")
        monkeypatch.setenv("KUBEVIGIL_NOTIFIER_DEFAULT_INTERVAL_SECONDS", "30")

        config = load_config()

        assert config.log.level == "debug"
        assert config.api.port == 9090
        assert config.rules.group == "policy.example.com"
        assert config.notifications.default_interval_seconds == 30

    def test_values_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEVIGIL_WORKERS_PER_KIND", "64")
        monkeypatch.setenv("KUBEVIGIL_API_PORT", "80")
        monkeypatch.setenv("KUBEVIGIL_RECONCILE_TIMEOUT_SECONDS", "1")

        config = load_config()

        assert config.controller.workers_per_kind == 16
        assert config.api.port == 1024
        assert config.controller.reconcile_timeout_seconds == 5

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEVIGIL_LOG_LEVEL", "chatty")
        with pytest.raises(ValueError, match="log level"):
            load_config()

    def test_invalid_group(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEVIGIL_RULE_GROUP", "Not_A_Group")
        with pytest.raises(ValueError, match="API group"):
            load_config()

    def test_retry_bounds_must_be_ordered(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KUBEVIGIL_RETRY_MIN_SECONDS", "40")
        monkeypatch.setenv("KUBEVIGIL_RETRY_MAX_SECONDS", "20")
        with pytest.raises(ValueError, match="RETRY_MAX_SECONDS"):
            load_config()
