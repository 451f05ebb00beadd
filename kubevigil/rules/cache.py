"""Process-wide registry of live rule instances.

Reconcilers for different resource kinds run concurrently and all read the
same rules. The registry maps are guarded by a coarse threading.Lock. Each
rule additionally gets its own asyncio.Lock that serializes
"evaluate + persist status" for that rule.
"""

from __future__ import annotations

import asyncio
import threading

from kubevigil.models.resources import ObjectKey
from kubevigil.rules.base import Rule
from kubevigil.rules.catalog import RuleDefinition


class RuleCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        # rule kind -> key -> rule
        self._rules: dict[str, dict[ObjectKey, Rule]] = {}
        # (namespace, rule kind, name) -> evaluation lock
        self._locks: dict[tuple[str, str, str], asyncio.Lock] = {}

    def save(self, rule: Rule) -> None:
        with self._lock:
            self._rules.setdefault(rule.kind, {})[rule.key] = rule

    def delete(self, rule_kind: str, key: ObjectKey) -> Rule | None:
        lock_key = (key.namespace, rule_kind, key.name)
        with self._lock:
            # an evaluation still holding the lock must exclude a re-created rule
            lock = self._locks.get(lock_key)
            if lock is not None and not lock.locked():
                del self._locks[lock_key]
            return self._rules.get(rule_kind, {}).pop(key, None)

    def get(self, rule_kind: str, key: ObjectKey) -> Rule | None:
        with self._lock:
            return self._rules.get(rule_kind, {}).get(key)

    def cluster_rules(self, definition: RuleDefinition) -> list[Rule]:
        with self._lock:
            return list(self._rules.get(definition.cluster_kind, {}).values())

    def namespaced_rules(self, definition: RuleDefinition, namespace: str) -> list[Rule]:
        if definition.namespaced_kind is None:
            return []
        with self._lock:
            rules = self._rules.get(definition.namespaced_kind, {})
            return [rule for key, rule in rules.items() if key.namespace == namespace]

    def all_rules(self) -> list[Rule]:
        with self._lock:
            return [rule for rules in self._rules.values() for rule in rules.values()]

    def lock(self, rule: Rule) -> asyncio.Lock:
        key = (rule.namespace, rule.kind, rule.name)
        with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        with self._lock:
            return sum(len(rules) for rules in self._rules.values())
