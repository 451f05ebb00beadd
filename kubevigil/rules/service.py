"""Service rules."""

from __future__ import annotations

from kubevigil.models.resources import KubeObject, ListOptions, object_namespace
from kubevigil.rules.base import Rule


class ClusterRuleServiceInvalidSelector(Rule):
    """Fires when a Service's selector matches no pod in its namespace."""

    kind = "ClusterRuleServiceInvalidSelector"
    resource_kind = "Service"

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        selector = (obj.get("spec") or {}).get("selector") or {}
        pods = await self._store.list(
            "Pod", ListOptions(namespace=object_namespace(obj), match_labels=dict(selector))
        )
        if not pods:
            return True, "Service has no matched pods for the selector"
        return False, "Service has pods for the selector"
