"""Alert data structures, dedup keys and message rendering."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

SEPARATOR = "/"

DEFAULT_MESSAGE_TEMPLATE = "[{{severity}}] {{resourceKind}} `{{resourceName}}` {{message}}"

# Accepts both "{{severity}}" and the dotted "{{.Severity}}" spelling.
_TEMPLATE_VAR = re.compile(r"\{\{\s*\.?([A-Za-z]+)\s*\}\}")


class Severity(StrEnum):
    """Alert severity; DEFAULT means "use the notifier's severity"."""

    DEFAULT = ""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    FATAL = "fatal"

    @property
    def color(self) -> str:
        return _SEVERITY_COLOR.get(self, COLOR_GRAY)


class AlertStatus(StrEnum):
    """Lifecycle state of an alert held by a notifier."""

    NONE = ""
    PENDING = "pending"
    FIRING = "firing"
    RECOVERING = "recovering"
    ERROR = "error"


COLOR_GRAY = "#B2B2B2"
COLOR_RED = "#FF1717"
COLOR_ORANGE = "#FF7400"
COLOR_YELLOW = "#FFF400"
COLOR_BLUE = "#0092FF"
COLOR_GREEN = "#49FF00"

_SEVERITY_COLOR: dict[Severity, str] = {
    Severity.FATAL: COLOR_RED,
    Severity.CRITICAL: COLOR_ORANGE,
    Severity.WARNING: COLOR_YELLOW,
    Severity.INFO: COLOR_BLUE,
}


@dataclass
class Alert:
    """Current presentation of one (rule, resource) violation.

    ``violated`` is the evaluation outcome that produced the alert; it drives
    the notifier state machine and is not persisted. ``message_template`` is
    copied from the rule's notification settings and is not persisted either.
    """

    resource_kind: str = ""
    resource_name: str = ""  # "namespace/name", namespace empty for cluster objects
    message: str = ""
    severity: Severity = Severity.DEFAULT
    suppressed: bool = False
    status: AlertStatus = AlertStatus.NONE
    error: str = ""
    message_template: str = ""
    violated: bool = False

    def render(self) -> str:
        """Fill the message template with this alert's fields.

        Raises:
            ValueError: if the template references an unknown variable.
        """
        template = self.message_template or DEFAULT_MESSAGE_TEMPLATE
        variables = {
            "severity": str(self.severity),
            "resourcekind": self.resource_kind,
            "resourcename": self.resource_name,
            "message": self.message,
            # legacy spelling used by older custom templates
            "defaultmessage": self.message,
        }

        def _sub(match: re.Match[str]) -> str:
            name = match.group(1).lower()
            if name not in variables:
                raise ValueError(f"unknown message template variable {match.group(0)!r}")
            return variables[name]

        return _TEMPLATE_VAR.sub(_sub, template)

    def copy(self, **changes: Any) -> Alert:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the persisted notifier-status shape."""
        return {
            "suppressed": self.suppressed,
            "severity": str(self.severity),
            "message": self.message,
            "resourceKind": self.resource_kind,
            "resourceName": self.resource_name,
            "status": str(self.status),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Alert:
        return cls(
            suppressed=bool(data.get("suppressed", False)),
            severity=_parse_severity(data.get("severity", "")),
            message=str(data.get("message", "")),
            resource_kind=str(data.get("resourceKind", "")),
            resource_name=str(data.get("resourceName", "")),
            status=_parse_status(data.get("status", "")),
            error=str(data.get("error", "")),
        )


def _parse_severity(value: object) -> Severity:
    try:
        return Severity(str(value or "").lower())
    except ValueError:
        return Severity.DEFAULT


def _parse_status(value: object) -> AlertStatus:
    try:
        return AlertStatus(str(value or ""))
    except ValueError:
        return AlertStatus.NONE


def parse_severity(value: object) -> Severity:
    """Lenient severity parsing; unknown values fall back to DEFAULT."""
    return _parse_severity(value)


def alert_key(rule_identity: str, resource_name: str) -> str:
    """Dedup key ``RuleKind/RuleName/ResourceNamespace/ResourceName``."""
    return SEPARATOR.join([rule_identity, resource_name])


def rule_identity_of(key: str) -> str:
    """Return the ``RuleKind/RuleName`` part of an alert key."""
    return SEPARATOR.join(key.split(SEPARATOR)[:2])


def resource_name_of(key: str) -> str:
    """Return the ``namespace/name`` part of an alert key."""
    return SEPARATOR.join(key.split(SEPARATOR)[-2:])


def split_key(key: str) -> tuple[str, str, str, str]:
    """Split an alert key into (rule kind, rule name, namespace, name)."""
    parts = key.split(SEPARATOR)
    if len(parts) != 4:
        raise ValueError(f"malformed alert key {key!r}")
    return parts[0], parts[1], parts[2], parts[3]
