"""Reconcile requests and results passed between queues and reconcilers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from kubevigil.models.alerts import SEPARATOR


@dataclass(frozen=True)
class ReconcileRequest:
    """A unit of work: reconcile the object ``namespace/name``.

    Rule triggers reuse the shape with ``name = "RuleKind/ruleName"`` and the
    rule's namespace (empty for cluster rules).
    """

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}{SEPARATOR}{self.name}"

    @classmethod
    def for_rule(cls, rule_kind: str, namespace: str, name: str) -> ReconcileRequest:
        return cls(namespace=namespace, name=f"{rule_kind}{SEPARATOR}{name}")

    @property
    def is_rule_trigger(self) -> bool:
        return SEPARATOR in self.name

    def rule_parts(self) -> tuple[str, str]:
        """Return (rule kind, rule name) for a rule trigger."""
        kind, _, name = self.name.partition(SEPARATOR)
        return kind, name


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconcile. ``requeue_after`` None means done."""

    requeue_after: timedelta | None = None

    @classmethod
    def after(cls, seconds: float) -> ReconcileResult:
        return cls(requeue_after=timedelta(seconds=seconds))

    def merge(self, other: ReconcileResult) -> ReconcileResult:
        """Keep the earliest requeue of the two."""
        if self.requeue_after is None:
            return other
        if other.requeue_after is None:
            return self
        return self if self.requeue_after <= other.requeue_after else other


DONE = ReconcileResult()
