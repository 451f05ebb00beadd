"""Notifier alert state machine and notification channels.

NotificationChannel -- ABC every channel must implement.
Notifier            -- Holds the alerts of one Notifier custom resource and
                       drives them through pending -> firing -> recovering.
NotifierCache       -- Process-wide registry of notifiers by name, with
                       fan-out helpers used by the reconcilers.

Alert lifecycle (per dedup key ``RuleKind/RuleName/namespace/name``):

    violation, no prior alert          -> pending
    violation, prior firing/recovering -> firing (a re-violation cancels recovery)
    recovery, prior pending            -> deleted (never delivered, nothing to report)
    recovery, prior firing/error       -> recovering (delivered once more, then deleted)
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import structlog

from kubevigil.errors import DeliveryError, NotifierNotFoundError
from kubevigil.models.alerts import (
    Alert,
    AlertStatus,
    Severity,
    alert_key,
    resource_name_of,
    rule_identity_of,
    split_key,
)
from kubevigil.models.resources import format_time, parse_time
from kubevigil.observability import metrics

_log = structlog.get_logger(component="notifications.manager")

# statuses a successful delivery moves to firing
_PROMOTABLE = (AlertStatus.PENDING, AlertStatus.NONE)


class NotificationChannel(ABC):
    """Abstract base class for all notification channels."""

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in metrics and logs."""

    @abstractmethod
    async def send(self, alert: Alert) -> None:
        """Deliver *alert* via this channel.

        Raises:
            DeliveryError: the remote endpoint did not accept the message.
        """


class Notifier:
    """Alerts held by one Notifier custom resource.

    All synchronous methods take the internal lock. ``notify()`` sends
    outside the lock. When an alert is replaced while its send is in flight,
    a successful delivery still promotes a replacement that is a pending
    violation, and a delivered recovery still removes a replacement that is
    recovering. Any other replacement keeps its own state.
    """

    def __init__(
        self,
        name: str,
        channels: list[NotificationChannel] | None = None,
        notify_interval: int = 60,
        default_severity: Severity = Severity.DEFAULT,
    ) -> None:
        self.name = name
        self.channels: list[NotificationChannel] = list(channels or [])
        self.notify_interval = notify_interval
        self.default_severity = default_severity
        self.checked_at: datetime | None = None
        self._alerts: dict[str, Alert] = {}
        self._lock = threading.Lock()

    @property
    def alerts(self) -> dict[str, Alert]:
        with self._lock:
            return dict(self._alerts)

    def set_alert(self, rule_identity: str, alert: Alert) -> None:
        key = alert_key(rule_identity, alert.resource_name)
        new = alert.copy()
        if new.severity == Severity.DEFAULT:
            new.severity = self.default_severity

        with self._lock:
            prior = self._alerts.get(key)
            if new.violated:
                if prior is not None and prior.status in (AlertStatus.FIRING, AlertStatus.RECOVERING):
                    new.status = AlertStatus.FIRING
                else:
                    new.status = AlertStatus.PENDING
                self._alerts[key] = new
                return

            if prior is None:
                return
            if prior.status == AlertStatus.PENDING:
                del self._alerts[key]
                return
            self._alerts[key] = prior.copy(
                status=AlertStatus.RECOVERING,
                message=f"{new.message} {prior.message}",
                violated=False,
            )

    def clear_rule_alerts(self, rule_identity: str, reason: str) -> None:
        self._clear(lambda key: rule_identity_of(key) == rule_identity, reason)

    def clear_resource_alerts(self, resource_name: str, reason: str) -> None:
        self._clear(lambda key: resource_name_of(key) == resource_name, reason)

    def clear_all_alerts(self, reason: str) -> None:
        self._clear(lambda key: True, reason)

    def _clear(self, matches: Callable[[str], bool], reason: str) -> None:
        with self._lock:
            for key, alert in list(self._alerts.items()):
                if matches(key):
                    self._alerts[key] = alert.copy(
                        status=AlertStatus.RECOVERING,
                        message=f"{reason} {alert.message}",
                        violated=False,
                    )

    async def notify(self) -> None:
        """Deliver every alert that is not already known to be firing.

        Each outcome is applied as soon as its send returns, so a cancelled
        call only loses the alert that was in flight. Delivery failures are
        recorded on the alert and retried on the next call. Recovering alerts
        are dropped after one attempt either way.
        """
        with self._lock:
            snapshot = list(self._alerts.items())

        for key, alert in snapshot:
            attempted = not (alert.suppressed or alert.status == AlertStatus.FIRING or not self.channels)
            error = await self._deliver(alert) if attempted else ""
            with self._lock:
                self._apply(key, alert, attempted, error)

        with self._lock:
            self.checked_at = datetime.now(tz=UTC)

    def _apply(self, key: str, sent: Alert, attempted: bool, error: str) -> None:
        """Record the outcome of delivering *sent*. Caller holds the lock."""
        current = self._alerts.get(key)
        if current is None:
            return
        if current is not sent:
            # replaced by set_alert/clear_* while we were sending
            if not attempted:
                return
            if sent.status == AlertStatus.RECOVERING and current.status == AlertStatus.RECOVERING:
                del self._alerts[key]
                self._record_gauge(key, current, active=False)
            elif not error and current.violated and current.status in _PROMOTABLE:
                self._alerts[key] = current.copy(status=AlertStatus.FIRING, error="")
                self._record_gauge(key, current, active=True)
            return

        updated = sent.copy()
        if attempted:
            if error:
                updated.error = error
            else:
                updated.error = ""
                if updated.status in _PROMOTABLE:
                    updated.status = AlertStatus.FIRING
        if updated.status == AlertStatus.RECOVERING:
            del self._alerts[key]
            self._record_gauge(key, updated, active=False)
        else:
            self._alerts[key] = updated
            self._record_gauge(key, updated, active=True)

    async def _deliver(self, alert: Alert) -> str:
        """Send *alert* to every channel; return the joined errors ("" on success)."""
        errors: list[str] = []
        for channel in self.channels:
            try:
                await channel.send(alert)
            except DeliveryError as exc:
                errors.append(f"{channel.channel_name}: {exc}")
                metrics.notifications_total.labels(channel=channel.channel_name, success="false").inc()
                _log.warning(
                    "notification_failed",
                    notifier=self.name,
                    channel=channel.channel_name,
                    resource=f"{alert.resource_kind}/{alert.resource_name}",
                    error=str(exc),
                )
                continue
            metrics.notifications_total.labels(channel=channel.channel_name, success="true").inc()
            _log.info(
                "notification_sent",
                notifier=self.name,
                channel=channel.channel_name,
                status=str(alert.status),
                severity=str(alert.severity),
                resource=f"{alert.resource_kind}/{alert.resource_name}",
            )
        return "; ".join(errors)

    @staticmethod
    def _record_gauge(key: str, alert: Alert, active: bool) -> None:
        try:
            rule_kind, rule_name, namespace, name = split_key(key)
        except ValueError:
            _log.warning("malformed_alert_key", key=key)
            return
        metrics.set_violation(rule_kind, rule_name, namespace, name, alert.resource_kind, active)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_status(self) -> dict[str, Any]:
        with self._lock:
            alerts = {key: alert.to_dict() for key, alert in sorted(self._alerts.items())}
            checked_at = self.checked_at
        status: dict[str, Any] = {"alerts": alerts}
        if checked_at is not None:
            status["checkedAt"] = format_time(checked_at)
        return status

    def load_status(self, status: dict[str, Any] | None) -> None:
        status = status or {}
        alerts = {key: Alert.from_dict(data) for key, data in (status.get("alerts") or {}).items()}
        with self._lock:
            self._alerts = alerts
            self.checked_at = parse_time(status.get("checkedAt"))

    def __repr__(self) -> str:
        return f"<Notifier {self.name} alerts={len(self._alerts)} channels={len(self.channels)}>"


class NotifierCache:
    """Registry of notifiers by name.

    ``ready`` stays False until the initial load of Notifier objects has
    finished; reconcilers requeue instead of dropping alerts until then.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._notifiers: dict[str, Notifier] = {}
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def mark_ready(self) -> None:
        self._ready = True

    def get(self, name: str) -> Notifier:
        with self._lock:
            notifier = self._notifiers.get(name)
        if notifier is None:
            raise NotifierNotFoundError(name)
        return notifier

    def save(self, notifier: Notifier) -> None:
        with self._lock:
            self._notifiers[notifier.name] = notifier

    def delete(self, name: str) -> Notifier | None:
        with self._lock:
            return self._notifiers.pop(name, None)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._notifiers)

    def all(self) -> list[Notifier]:
        with self._lock:
            return list(self._notifiers.values())

    def set_alert(self, notifier_names: Iterable[str], rule_identity: str, alert: Alert) -> None:
        """Push *alert* to every named notifier; unknown names are logged and skipped."""
        for notifier in self._resolve(notifier_names, rule_identity):
            notifier.set_alert(rule_identity, alert)

    def clear_rule_alerts(self, notifier_names: Iterable[str], rule_identity: str, reason: str) -> None:
        for notifier in self._resolve(notifier_names, rule_identity):
            notifier.clear_rule_alerts(rule_identity, reason)

    def clear_resource_alerts(
        self, notifier_names: Iterable[str], rule_identity: str, resource_name: str, reason: str
    ) -> None:
        for notifier in self._resolve(notifier_names, rule_identity):
            notifier.clear_resource_alerts(resource_name, reason)

    def _resolve(self, notifier_names: Iterable[str], rule_identity: str) -> list[Notifier]:
        notifiers: list[Notifier] = []
        for name in notifier_names:
            try:
                notifiers.append(self.get(name))
            except NotifierNotFoundError:
                _log.warning("notifier_not_found", notifier=name, rule=rule_identity)
        return notifiers
