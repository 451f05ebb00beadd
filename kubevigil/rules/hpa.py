"""HorizontalPodAutoscaler rules.

ClusterRuleHPAReplicaPercentage / RuleHPAReplicaPercentage
    Fires when an HPA runs at or above a percentage of its max replicas.
ClusterRuleHPAInvalidScaleTargetRef
    Fires when the HPA's scale target does not exist.
"""

from __future__ import annotations

from typing import Any

from kubevigil.errors import RuleConfigurationError
from kubevigil.models.resources import KubeObject, ListOptions, object_namespace
from kubevigil.rules.base import Rule

_SCALE_TARGET_KINDS = ("Deployment", "ReplicaSet")


class HPAReplicaPercentageRule(Rule):
    resource_kind = "HorizontalPodAutoscaler"

    def _load_spec(self, spec: dict[str, Any]) -> None:
        try:
            self.percent = int(spec.get("percent", 0))
        except (TypeError, ValueError):
            raise RuleConfigurationError(f"{self.identity}: percent must be an integer") from None

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        current = int((obj.get("status") or {}).get("currentReplicas") or 0)
        maximum = int((obj.get("spec") or {}).get("maxReplicas") or 0)
        if maximum > 0:
            ratio = current / maximum
        else:
            ratio = float("inf") if current > 0 else 0.0
        if ratio >= self.percent / 100.0:
            return True, f"HPA percentage is >= {self.percent}%"
        return False, f"HPA percentage is within threshold (< {self.percent}%)"


class ClusterRuleHPAReplicaPercentage(HPAReplicaPercentageRule):
    kind = "ClusterRuleHPAReplicaPercentage"


class RuleHPAReplicaPercentage(HPAReplicaPercentageRule):
    kind = "RuleHPAReplicaPercentage"
    namespaced = True


class ClusterRuleHPAInvalidScaleTargetRef(Rule):
    kind = "ClusterRuleHPAInvalidScaleTargetRef"
    resource_kind = "HorizontalPodAutoscaler"

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        ref = (obj.get("spec") or {}).get("scaleTargetRef") or {}
        target_kind = ref.get("kind") or ""
        if target_kind not in _SCALE_TARGET_KINDS:
            raise RuleConfigurationError(
                f"unknown HPA scaleTargetRef kind {target_kind!r} (name {ref.get('name')!r})"
            )
        targets = await self._store.list(
            target_kind,
            ListOptions(namespace=object_namespace(obj), name=ref.get("name") or ""),
        )
        if any((t.get("metadata") or {}).get("name") == ref.get("name") for t in targets):
            return False, "HPA has valid scale target ref"
        return True, "HPA has invalid scale target ref"
