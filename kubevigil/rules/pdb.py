"""PodDisruptionBudget rules."""

from __future__ import annotations

from typing import Any

from kubevigil.errors import RuleConfigurationError
from kubevigil.models.resources import KubeObject, ListOptions, int_or_percent, object_namespace
from kubevigil.rules.base import Rule


class _PDBRule(Rule):
    resource_kind = "PodDisruptionBudget"

    async def matched_pods(self, pdb: KubeObject) -> list[KubeObject]:
        selector = (pdb.get("spec") or {}).get("selector") or {}
        return await self._store.list(
            "Pod",
            ListOptions(namespace=object_namespace(pdb), match_labels=dict(selector.get("matchLabels") or {})),
        )


class PDBMinAllowedDisruptionRule(_PDBRule):
    """Fires when a PDB allows fewer voluntary disruptions than configured (never below 1)."""

    def _load_spec(self, spec: dict[str, Any]) -> None:
        try:
            configured = int(spec.get("minAllowedDisruption") or 0)
        except (TypeError, ValueError):
            raise RuleConfigurationError(f"{self.identity}: minAllowedDisruption must be an integer") from None
        self.min_allowed_disruption = max(1, configured)

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        matched = len(await self.matched_pods(obj))
        spec = obj.get("spec") or {}
        allowed = 0
        try:
            if spec.get("maxUnavailable") is not None:
                allowed = int_or_percent(spec["maxUnavailable"], matched, round_up=True)
            elif spec.get("minAvailable") is not None:
                allowed = matched - int_or_percent(spec["minAvailable"], matched, round_up=True)
        except ValueError as exc:
            raise RuleConfigurationError(str(exc)) from exc

        expected = self.min_allowed_disruption
        if allowed < expected:
            return True, f"PDB doesnt have enough disruption pod (expect {expected}, but currently is {allowed})"
        return False, f"PDB has enough disruption pod (expect {expected}, currently is {allowed})"


class ClusterRulePDBMinAllowedDisruption(PDBMinAllowedDisruptionRule):
    kind = "ClusterRulePDBMinAllowedDisruption"


class RulePDBMinAllowedDisruption(PDBMinAllowedDisruptionRule):
    kind = "RulePDBMinAllowedDisruption"
    namespaced = True


class ClusterRulePDBInvalidSelector(_PDBRule):
    kind = "ClusterRulePDBInvalidSelector"

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        if not await self.matched_pods(obj):
            return True, "PDB has no matched pods for the selector"
        return False, "PDB has pods for the selector"
