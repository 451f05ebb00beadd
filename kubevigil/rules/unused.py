"""Unused Secret / ConfigMap rules.

Two evaluation paths share the reference scan:

* owner path  -- a Secret/ConfigMap changed: scan every pod in its namespace.
* pod path    -- a Pod changed: re-check only the owners this rule currently
                 holds as violating in that namespace, so a pod update never
                 triggers a rescan of every Secret/ConfigMap.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar

from kubevigil.errors import RuleConfigurationError
from kubevigil.models.alerts import Alert
from kubevigil.models.resources import (
    KubeObject,
    ListOptions,
    ObjectKey,
    creation_timestamp,
    object_kind,
    object_name,
    object_namespace,
)
from kubevigil.rules.base import Rule


class UnusedResourceRule(Rule):
    """Fires when no pod in the namespace references the object."""

    namespaced = False
    # pod spec field names for this resource kind
    volume_source: ClassVar[str]
    volume_name_field: ClassVar[str]
    env_from_ref: ClassVar[str]
    env_key_ref: ClassVar[str]

    def _load_spec(self, spec: dict[str, Any]) -> None:
        try:
            self.initial_delay = timedelta(seconds=int(spec.get("initialDelaySeconds") or 0))
        except (TypeError, ValueError):
            raise RuleConfigurationError(f"{self.identity}: initialDelaySeconds must be an integer") from None

    @property
    def unused_message(self) -> str:
        return f"{self.resource_kind} is not being used"

    def reference(self, pod: KubeObject, name: str) -> str:
        """Describe how *pod* uses the object called *name*, or "" if it does not."""
        pod_name = object_name(pod)
        spec = pod.get("spec") or {}
        for volume in spec.get("volumes") or []:
            source = volume.get(self.volume_source) or {}
            if source and source.get(self.volume_name_field) == name:
                return f"{self.resource_kind} is being used by pod '{pod_name}' volume '{volume.get('name')}'"
        for container in spec.get("containers") or []:
            container_name = container.get("name")
            for env_from in container.get("envFrom") or []:
                ref = env_from.get(self.env_from_ref) or {}
                if ref and ref.get("name") == name:
                    return f"{self.resource_kind} is being used by pod '{pod_name}' container '{container_name}' env"
            for env in container.get("env") or []:
                ref = (env.get("valueFrom") or {}).get(self.env_key_ref) or {}
                if ref and ref.get("name") == name:
                    return (
                        f"{self.resource_kind} is being used by pod '{pod_name}' "
                        f"container '{container_name}' env '{env.get('name')}'"
                    )
        return ""

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        pods = await self._store.list("Pod", ListOptions(namespace=object_namespace(obj)))
        name = object_name(obj)
        for pod in pods:
            message = self.reference(pod, name)
            if message:
                return False, message
        return True, self.unused_message

    async def _evaluate(self, obj: KubeObject, key: ObjectKey) -> Alert:
        if object_kind(obj) == "Pod":
            return self._evaluate_pod(obj)
        return await super()._evaluate(obj, key)

    def _evaluate_pod(self, pod: KubeObject) -> Alert:
        namespace = object_namespace(pod)
        violating = sorted(self.status.violations_in(namespace))
        for key in violating:
            message = self.reference(pod, key.name)
            if message:
                self.status.set_violation(key, False)
                return self._owner_alert(key, message, violated=False)
        if violating:
            return self._owner_alert(violating[0], self.unused_message, violated=True)
        # nothing to re-check in this namespace
        return self._owner_alert(ObjectKey(namespace=namespace, name=""), "", violated=False)

    def _owner_alert(self, key: ObjectKey, message: str, violated: bool) -> Alert:
        owner = {"kind": self.resource_kind, "metadata": {"namespace": key.namespace, "name": key.name}}
        alert = self.base_alert(owner, message)
        alert.violated = violated
        return alert

    def get_delay(self, obj: KubeObject) -> timedelta:
        if object_kind(obj) != self.resource_kind:
            return timedelta(0)
        created = creation_timestamp(obj)
        if created is None:
            return timedelta(0)
        remaining = created + self.initial_delay - datetime.now(tz=UTC)
        return max(remaining, timedelta(0))


class ClusterRuleSecretUnused(UnusedResourceRule):
    kind = "ClusterRuleSecretUnused"
    resource_kind = "Secret"
    target_kinds = ("Secret", "Pod")
    volume_source = "secret"
    volume_name_field = "secretName"
    env_from_ref = "secretRef"
    env_key_ref = "secretKeyRef"

    def applies_to(self, obj: KubeObject) -> bool:
        if object_kind(obj) != "Secret":
            return True
        # the API server defaults a missing type to Opaque
        return (obj.get("type") or "Opaque") == "Opaque"


class ClusterRuleConfigMapUnused(UnusedResourceRule):
    kind = "ClusterRuleConfigMapUnused"
    resource_kind = "ConfigMap"
    target_kinds = ("ConfigMap", "Pod")
    volume_source = "configMap"
    volume_name_field = "name"
    env_from_ref = "configMapRef"
    env_key_ref = "configMapKeyRef"
