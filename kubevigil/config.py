"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from kubevigil.models.config import (
    APIConfig,
    ControllerConfig,
    KubeVigilConfig,
    LogConfig,
    NotificationConfig,
    RuleConfig,
)

_DNS_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEVIGIL_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_group(value: str) -> str:
    if not _DNS_SUBDOMAIN.match(value):
        raise ValueError(f"Invalid API group: {value}")
    return value


def _build_controller_config() -> ControllerConfig:
    retry_min = _env_int("RETRY_MIN_SECONDS", 10, min_val=1)
    retry_max = _env_int("RETRY_MAX_SECONDS", 30, min_val=1)
    if retry_max < retry_min:
        raise ValueError(f"RETRY_MAX_SECONDS ({retry_max}) must be >= RETRY_MIN_SECONDS ({retry_min})")
    return ControllerConfig(
        workers_per_kind=_env_int("WORKERS_PER_KIND", 2, min_val=1, max_val=16),
        retry_min_seconds=retry_min,
        retry_max_seconds=retry_max,
        min_check_interval_seconds=_env_int("MIN_CHECK_INTERVAL_SECONDS", 10, min_val=0),
        reconcile_timeout_seconds=_env_int("RECONCILE_TIMEOUT_SECONDS", 60, min_val=5, max_val=600),
    )


def load_config() -> KubeVigilConfig:
    """Load configuration from KUBEVIGIL_* environment variables."""
    return KubeVigilConfig(
        controller=_build_controller_config(),
        rules=RuleConfig(
            group=_validate_group(_env("RULE_GROUP", "kubevigil.io")),
            version=_env("RULE_VERSION", "v1"),
        ),
        notifications=NotificationConfig(
            default_interval_seconds=_env_int("NOTIFIER_DEFAULT_INTERVAL_SECONDS", 60, min_val=1),
            http_timeout_seconds=_env_int("HTTP_TIMEOUT_SECONDS", 10, min_val=1, max_val=120),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
