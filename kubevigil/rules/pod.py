"""Pod health rules."""

from __future__ import annotations

from typing import Any

from kubevigil.errors import RuleConfigurationError
from kubevigil.models.resources import KubeObject
from kubevigil.rules.base import Rule


class PodRestartsRule(Rule):
    """Fires when a container restarted more than ``threshold`` times and the pod is not Running."""

    resource_kind = "Pod"

    def _load_spec(self, spec: dict[str, Any]) -> None:
        try:
            self.threshold = int(spec.get("threshold") or 0)
        except (TypeError, ValueError):
            raise RuleConfigurationError(f"{self.identity}: threshold must be an integer") from None

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        status = obj.get("status") or {}
        if status.get("phase") != "Running":
            for container in status.get("containerStatuses") or []:
                restarts = int(container.get("restartCount") or 0)
                if restarts > self.threshold:
                    return True, (
                        f"Pod has too many restarts and it's not running "
                        f"(container '{container.get('name')}' restarted {restarts} times)"
                    )
        return False, f"Pod restarts are within threshold (<= {self.threshold})"


class ClusterRulePodRestarts(PodRestartsRule):
    kind = "ClusterRulePodRestarts"


class RulePodRestarts(PodRestartsRule):
    kind = "RulePodRestarts"
    namespaced = True
