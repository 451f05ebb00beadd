"""Core data structures for kubevigil."""

from kubevigil.models.alerts import Alert, AlertStatus, Severity, alert_key
from kubevigil.models.config import KubeVigilConfig
from kubevigil.models.requests import ReconcileRequest, ReconcileResult
from kubevigil.models.resources import (
    KubeObject,
    ListOptions,
    Notification,
    ObjectKey,
    RequiredLabel,
    RuleStatus,
    Selector,
)

__all__ = [
    "Alert",
    "AlertStatus",
    "KubeObject",
    "KubeVigilConfig",
    "ListOptions",
    "Notification",
    "ObjectKey",
    "ReconcileRequest",
    "ReconcileResult",
    "RequiredLabel",
    "RuleStatus",
    "Selector",
    "Severity",
    "alert_key",
]
