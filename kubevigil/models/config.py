"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ControllerConfig:
    """Work queue and reconciler tuning."""

    workers_per_kind: int = 2
    retry_min_seconds: int = 10
    retry_max_seconds: int = 30
    min_check_interval_seconds: int = 10
    reconcile_timeout_seconds: int = 60
    notifier_cache_wait_seconds: int = 3
    rule_not_ready_wait_seconds: int = 5


@dataclass
class RuleConfig:
    """Custom resource coordinates for rule and notifier objects."""

    group: str = "kubevigil.io"
    version: str = "v1"


@dataclass
class NotificationConfig:
    """Notifier defaults."""

    default_interval_seconds: int = 60
    http_timeout_seconds: int = 10


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeVigilConfig:
    """Top-level kubevigil configuration."""

    controller: ControllerConfig = field(default_factory=ControllerConfig)
    rules: RuleConfig = field(default_factory=RuleConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
