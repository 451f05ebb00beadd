"""Rule definitions and the catalog of every rule kind kubevigil knows."""

from __future__ import annotations

from dataclasses import dataclass

from kubevigil.models.resources import ObjectKey
from kubevigil.rules.base import Rule
from kubevigil.rules.hpa import (
    ClusterRuleHPAInvalidScaleTargetRef,
    ClusterRuleHPAReplicaPercentage,
    RuleHPAReplicaPercentage,
)
from kubevigil.rules.namespace import ClusterRuleNamespaceRequiredLabel
from kubevigil.rules.pdb import (
    ClusterRulePDBInvalidSelector,
    ClusterRulePDBMinAllowedDisruption,
    RulePDBMinAllowedDisruption,
)
from kubevigil.rules.pod import ClusterRulePodRestarts, RulePodRestarts
from kubevigil.rules.service import ClusterRuleServiceInvalidSelector
from kubevigil.rules.unused import ClusterRuleConfigMapUnused, ClusterRuleSecretUnused
from kubevigil.store.base import ObjectStore


@dataclass(frozen=True)
class RuleDefinition:
    """One policy: its cluster-scoped rule class and optional namespace-scoped twin."""

    cluster: type[Rule]
    namespaced: type[Rule] | None = None

    @property
    def cluster_kind(self) -> str:
        return self.cluster.kind

    @property
    def namespaced_kind(self) -> str | None:
        return self.namespaced.kind if self.namespaced is not None else None

    @property
    def resource_kind(self) -> str:
        return self.cluster.resource_kind

    @property
    def watched_kinds(self) -> tuple[str, ...]:
        return self.cluster.target_kinds or (self.cluster.resource_kind,)

    @property
    def rule_kinds(self) -> tuple[str, ...]:
        if self.namespaced is None:
            return (self.cluster.kind,)
        return (self.cluster.kind, self.namespaced.kind)

    def rule_class(self, rule_kind: str) -> type[Rule]:
        if rule_kind == self.cluster.kind:
            return self.cluster
        if self.namespaced is not None and rule_kind == self.namespaced.kind:
            return self.namespaced
        raise KeyError(rule_kind)


DEFAULT_DEFINITIONS: tuple[RuleDefinition, ...] = (
    RuleDefinition(ClusterRuleHPAReplicaPercentage, RuleHPAReplicaPercentage),
    RuleDefinition(ClusterRuleHPAInvalidScaleTargetRef),
    RuleDefinition(ClusterRulePDBMinAllowedDisruption, RulePDBMinAllowedDisruption),
    RuleDefinition(ClusterRulePDBInvalidSelector),
    RuleDefinition(ClusterRuleServiceInvalidSelector),
    RuleDefinition(ClusterRuleNamespaceRequiredLabel),
    RuleDefinition(ClusterRuleSecretUnused),
    RuleDefinition(ClusterRuleConfigMapUnused),
    RuleDefinition(ClusterRulePodRestarts, RulePodRestarts),
)


class RuleCatalog:
    """Lookup of rule definitions by rule kind and by watched resource kind."""

    def __init__(self, definitions: tuple[RuleDefinition, ...] = DEFAULT_DEFINITIONS) -> None:
        self._definitions = definitions
        self._by_rule_kind: dict[str, RuleDefinition] = {}
        for definition in definitions:
            for kind in definition.rule_kinds:
                self._by_rule_kind[kind] = definition

    @property
    def definitions(self) -> tuple[RuleDefinition, ...]:
        return self._definitions

    def by_rule_kind(self, rule_kind: str) -> RuleDefinition:
        """Raises KeyError for an unknown rule kind."""
        return self._by_rule_kind[rule_kind]

    def for_watched_kind(self, kind: str) -> list[RuleDefinition]:
        return [d for d in self._definitions if kind in d.watched_kinds]

    def rule_kinds(self) -> dict[str, bool]:
        """Every rule kind mapped to whether it is namespace-scoped."""
        return {kind: d.rule_class(kind).namespaced for kind, d in self._by_rule_kind.items()}

    def watched_kinds(self) -> list[str]:
        kinds: list[str] = []
        for definition in self._definitions:
            for kind in definition.watched_kinds:
                if kind not in kinds:
                    kinds.append(kind)
        return kinds

    async def new(self, store: ObjectStore, rule_kind: str, key: ObjectKey) -> Rule:
        """Load a rule custom resource from *store* and instantiate it.

        Raises:
            NotFoundError: the rule object no longer exists.
            RuleConfigurationError: its spec cannot be evaluated.
        """
        rule_cls = self.by_rule_kind(rule_kind).rule_class(rule_kind)
        obj = await store.get(rule_kind, key)
        obj.setdefault("kind", rule_kind)
        return rule_cls(store, obj)
