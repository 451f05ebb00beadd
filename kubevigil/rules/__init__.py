"""Policy rules.

Usage::

    from kubevigil.rules import RuleCache, RuleCatalog

    catalog = RuleCatalog()
    rule = await catalog.new(store, "ClusterRuleSecretUnused", ObjectKey("", "unused-secrets"))
    alerts = await rule.evaluate_all()
"""

from __future__ import annotations

from kubevigil.rules.base import IGNORED_MESSAGE, Rule
from kubevigil.rules.cache import RuleCache
from kubevigil.rules.catalog import DEFAULT_DEFINITIONS, RuleCatalog, RuleDefinition

__all__ = [
    "DEFAULT_DEFINITIONS",
    "IGNORED_MESSAGE",
    "Rule",
    "RuleCache",
    "RuleCatalog",
    "RuleDefinition",
]
