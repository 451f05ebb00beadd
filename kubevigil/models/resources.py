"""Resource identities, selectors and per-rule violation bookkeeping.

Kubernetes objects travel through kubevigil as plain JSON dicts (the shape
returned by the API server, camelCase keys). The helpers at the bottom of
this module are the only place that knows where metadata lives.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from kubevigil.models.alerts import SEPARATOR, Severity, parse_severity

KubeObject = dict[str, Any]


@dataclass(frozen=True, order=True)
class ObjectKey:
    """namespace + name. Namespace is empty for cluster-scoped objects."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}{SEPARATOR}{self.name}"

    @classmethod
    def parse(cls, value: str) -> ObjectKey:
        namespace, _, name = value.rpartition(SEPARATOR)
        return cls(namespace=namespace, name=name)

    @classmethod
    def of(cls, obj: KubeObject) -> ObjectKey:
        meta = obj.get("metadata") or {}
        return cls(namespace=meta.get("namespace") or "", name=meta.get("name") or "")

    @property
    def effective_namespace(self) -> str:
        """Namespace used for ignore-list checks; a Namespace object is its own namespace."""
        return self.namespace or self.name


@dataclass(frozen=True)
class ListOptions:
    """Filter for ObjectStore.list."""

    namespace: str = ""
    name: str = ""
    match_labels: dict[str, str] = field(default_factory=dict)

    def label_selector(self) -> str:
        return ",".join(f"{k}={v}" for k, v in sorted(self.match_labels.items()))

    def field_selector(self) -> str:
        return f"metadata.name={self.name}" if self.name else ""


@dataclass(frozen=True)
class Selector:
    """Scopes which objects a namespace rule considers.

    An empty selector matches every object in the namespace.
    """

    name: str = ""
    match_labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Selector:
        data = data or {}
        return cls(name=data.get("name") or "", match_labels=dict(data.get("matchLabels") or {}))

    def matches(self, obj: KubeObject) -> bool:
        if self.name and object_name(obj) != self.name:
            return False
        labels = object_labels(obj)
        return all(labels.get(k) == v for k, v in self.match_labels.items())

    def as_list_options(self, namespace: str) -> ListOptions:
        return ListOptions(namespace=namespace, name=self.name, match_labels=dict(self.match_labels))


@dataclass(frozen=True)
class Notification:
    """Where and how a rule's alerts are delivered."""

    notifiers: tuple[str, ...] = ()
    suppressed: bool = False
    severity: Severity = Severity.DEFAULT
    custom_message_template: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Notification:
        data = data or {}
        return cls(
            notifiers=tuple(data.get("notifiers") or ()),
            suppressed=bool(data.get("suppressed", False)),
            severity=parse_severity(data.get("severity", "")),
            custom_message_template=data.get("customMessageTemplate") or "",
        )


@dataclass(frozen=True)
class RequiredLabel:
    """A label that must be present, matched exactly or by regexp."""

    key: str
    value: str = ""
    match: str = "exact"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RequiredLabel:
        data = data or {}
        return cls(key=data.get("key") or "", value=data.get("value") or "", match=data.get("match") or "exact")


class RuleStatus:
    """Per-rule violation set plus the time it was last updated.

    ``set_violation`` is the only mutator. The internal lock keeps readers
    (pod-path evaluation, the status API) consistent with concurrent writers.
    """

    def __init__(
        self,
        violations: dict[str, datetime] | None = None,
        checked_at: datetime | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._violations: dict[str, datetime] = dict(violations or {})
        self.checked_at = checked_at

    def set_violation(self, key: ObjectKey, is_violated: bool) -> None:
        now = datetime.now(tz=UTC)
        with self._lock:
            if is_violated:
                self._violations[str(key)] = now
            else:
                self._violations.pop(str(key), None)
            self.checked_at = now

    def is_violated(self, key: ObjectKey) -> bool:
        with self._lock:
            return str(key) in self._violations

    @property
    def violations(self) -> dict[str, datetime]:
        with self._lock:
            return dict(self._violations)

    def violations_in(self, namespace: str) -> dict[ObjectKey, datetime]:
        """Violating keys whose namespace segment equals *namespace*."""
        with self._lock:
            items = list(self._violations.items())
        return {
            key: detected
            for key, detected in ((ObjectKey.parse(k), v) for k, v in items)
            if key.namespace == namespace
        }

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            violations = {k: format_time(v) for k, v in sorted(self._violations.items())}
        data: dict[str, Any] = {"violations": violations}
        if self.checked_at is not None:
            data["checkedAt"] = format_time(self.checked_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RuleStatus:
        data = data or {}
        violations: dict[str, datetime] = {}
        for key, value in (data.get("violations") or {}).items():
            parsed = parse_time(value)
            violations[key] = parsed or datetime.now(tz=UTC)
        return cls(violations=violations, checked_at=parse_time(data.get("checkedAt")))


# ---------------------------------------------------------------------------
# Raw object helpers
# ---------------------------------------------------------------------------


def object_name(obj: KubeObject) -> str:
    return (obj.get("metadata") or {}).get("name") or ""


def object_namespace(obj: KubeObject) -> str:
    return (obj.get("metadata") or {}).get("namespace") or ""


def object_labels(obj: KubeObject) -> dict[str, str]:
    return (obj.get("metadata") or {}).get("labels") or {}


def object_annotations(obj: KubeObject) -> dict[str, str]:
    return (obj.get("metadata") or {}).get("annotations") or {}


def object_kind(obj: KubeObject) -> str:
    return obj.get("kind") or ""


def creation_timestamp(obj: KubeObject) -> datetime | None:
    return parse_time((obj.get("metadata") or {}).get("creationTimestamp"))


def deletion_timestamp(obj: KubeObject) -> datetime | None:
    return parse_time((obj.get("metadata") or {}).get("deletionTimestamp"))


def format_time(value: datetime) -> str:
    """RFC3339 with second precision, always UTC ("Z" suffix)."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_time(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def int_or_percent(value: int | str, total: int, round_up: bool) -> int:
    """Resolve an IntOrString against *total*.

    Raises:
        ValueError: if *value* is a string that is not a percentage.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid int-or-percent value {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text.endswith("%"):
        try:
            return int(text)
        except ValueError:
            raise ValueError(f"invalid int-or-percent value {value!r}") from None
    try:
        percent = int(text[:-1])
    except ValueError:
        raise ValueError(f"invalid int-or-percent value {value!r}") from None
    scaled = percent * total / 100.0
    return math.ceil(scaled) if round_up else math.floor(scaled)
