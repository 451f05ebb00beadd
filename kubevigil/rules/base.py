"""Rule base class.

A Rule wraps one rule custom resource (cluster- or namespace-scoped) and
knows how to evaluate the objects it targets. Every concrete rule inherits
from Rule and sets the class-level attributes below; the per-object check is
the only thing most rules implement.

Evaluation contract:
    evaluate(obj)   -- one object; updates this rule's RuleStatus for it
    evaluate_all()  -- every target object, used when the rule itself changed
    get_delay(obj)  -- remaining grace period before obj may be evaluated
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, ClassVar

from kubevigil.errors import RuleTypeError
from kubevigil.models.alerts import SEPARATOR, Alert
from kubevigil.models.resources import (
    KubeObject,
    ListOptions,
    Notification,
    ObjectKey,
    RuleStatus,
    Selector,
    deletion_timestamp,
    object_kind,
)
from kubevigil.observability.logging import get_logger
from kubevigil.observability.metrics import rule_evaluations_total
from kubevigil.store.base import ObjectStore

_logger = get_logger("rules")

IGNORED_MESSAGE = "namespace is ignored by the rule"


class Rule(ABC):
    """Abstract base class for all policy rules.

    Subclasses MUST define class-level attributes:
        kind          -- rule custom resource kind, e.g. "ClusterRuleSecretUnused"
        resource_kind -- primary target kind, e.g. "Secret"
        namespaced    -- True for namespace rules (selector, no ignore list)

    and MAY define:
        target_kinds  -- kinds evaluate() accepts; defaults to (resource_kind,)

    Raises:
        RuleConfigurationError: from the constructor when the policy
            parameters cannot be evaluated.
    """

    kind: ClassVar[str]
    resource_kind: ClassVar[str]
    namespaced: ClassVar[bool] = False
    target_kinds: ClassVar[tuple[str, ...]] = ()

    def __init__(self, store: ObjectStore, obj: KubeObject) -> None:
        self._store = store
        self._object: KubeObject = copy.deepcopy(obj)
        self._object.setdefault("kind", self.kind)
        meta = self._object.setdefault("metadata", {})
        spec = self._object.get("spec") or {}

        self.name: str = meta.get("name") or ""
        self.namespace: str = (meta.get("namespace") or "") if self.namespaced else ""
        self.notification = Notification.from_dict(spec.get("notification"))
        self.selector = Selector.from_dict(spec.get("selector")) if self.namespaced else Selector()
        self.ignore_namespaces: tuple[str, ...] = (
            () if self.namespaced else tuple(spec.get("ignoreNamespaces") or ())
        )
        self.status = RuleStatus.from_dict(self._object.get("status"))
        # false until the first evaluate_all after (re)load has finished
        self.ready = False
        self._load_spec(spec)

    # ------------------------------------------------------------------
    # Identity and metadata
    # ------------------------------------------------------------------

    @property
    def identity(self) -> str:
        """``Kind/name``, the rule half of every alert key."""
        return f"{self.kind}{SEPARATOR}{self.name}"

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    @property
    def is_namespaced(self) -> bool:
        return self.namespaced

    @property
    def finalizers(self) -> list[str]:
        return list(self._object["metadata"].get("finalizers") or [])

    @property
    def deletion_timestamp(self) -> datetime | None:
        return deletion_timestamp(self._object)

    @property
    def generation(self) -> int:
        return int(self._object["metadata"].get("generation") or 0)

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def set_finalizer(self, finalizer: str) -> None:
        if not self.has_finalizer(finalizer):
            self._object["metadata"]["finalizers"] = [*self.finalizers, finalizer]

    def remove_finalizer(self, finalizer: str) -> None:
        self._object["metadata"]["finalizers"] = [f for f in self.finalizers if f != finalizer]

    def is_namespace_ignored(self, namespace: str) -> bool:
        if self.namespaced:
            return False
        return namespace in self.ignore_namespaces

    def applies_to(self, obj: KubeObject) -> bool:
        """False for objects of a target kind that this rule never evaluates."""
        return True

    def to_object(self) -> KubeObject:
        """The rule custom resource with the current status, ready to persist."""
        obj = copy.deepcopy(self._object)
        obj["status"] = self.status.to_dict()
        return obj

    def refresh_from(self, stored: KubeObject) -> None:
        """Adopt metadata returned by the store after a write (resourceVersion, finalizers)."""
        meta = stored.get("metadata") or {}
        self._object["metadata"] = copy.deepcopy(meta)

    def base_alert(self, obj: KubeObject, message: str = "") -> Alert:
        return Alert(
            resource_kind=object_kind(obj) or self.resource_kind,
            resource_name=str(ObjectKey.of(obj)),
            message=message,
            severity=self.notification.severity,
            suppressed=self.notification.suppressed,
            message_template=self.notification.custom_message_template,
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(self, obj: KubeObject) -> Alert:
        """Evaluate one object and record the outcome in this rule's status.

        Raises:
            RuleTypeError: *obj* is not one of this rule's target kinds.
            RuleConfigurationError: *obj* carries a value the rule cannot check.
            StoreError: a lookup needed for the check failed.
        """
        kind = object_kind(obj)
        accepted = self.target_kinds or (self.resource_kind,)
        if kind not in accepted:
            raise RuleTypeError(self.identity, list(accepted), kind)

        key = ObjectKey.of(obj)
        if self.is_namespace_ignored(key.effective_namespace):
            self.status.set_violation(key, False)
            return self.base_alert(obj, IGNORED_MESSAGE)

        rule_evaluations_total.labels(rule=self.kind).inc()
        alert = await self._evaluate(obj, key)
        _logger.debug(
            "rule_evaluated",
            rule=self.identity,
            resource_kind=alert.resource_kind,
            resource=alert.resource_name,
            violated=alert.violated,
        )
        return alert

    async def evaluate_all(self) -> list[Alert]:
        """Evaluate every object this rule targets, in listing order."""
        if self.namespaced:
            options = self.selector.as_list_options(self.namespace)
        else:
            options = ListOptions()
        objects = await self._store.list(self.resource_kind, options)
        if not objects:
            _logger.info("rule_has_no_targets", rule=self.identity, kind=self.resource_kind)
            return []

        alerts: list[Alert] = []
        for obj in objects:
            obj.setdefault("kind", self.resource_kind)
            if not self.applies_to(obj):
                continue
            alerts.append(await self.evaluate(obj))
        return alerts

    def get_delay(self, obj: KubeObject) -> timedelta:
        return timedelta(0)

    async def _evaluate(self, obj: KubeObject, key: ObjectKey) -> Alert:
        violated, message = await self.check(obj)
        self.status.set_violation(key, violated)
        alert = self.base_alert(obj, message)
        alert.violated = violated
        return alert

    @abstractmethod
    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        """Return ``(violated, message)`` for one target object."""

    def _load_spec(self, spec: dict[str, Any]) -> None:  # noqa: B027
        """Parse policy parameters from the rule spec."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.namespace}/{self.name} ready={self.ready}>"
