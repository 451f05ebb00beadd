"""Prometheus metrics for kubevigil.

All collectors live in the default registry so that ``/metrics`` can expose
them with ``generate_latest()``.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

violation = Gauge(
    "kubevigil_violation",
    "1 while a resource violates a rule, 0 once it has recovered",
    ["rule", "rule_name", "resource_namespace", "resource_name", "kind"],
)

notifications_total = Counter(
    "kubevigil_notifications_total",
    "Alert deliveries by channel and outcome",
    ["channel", "success"],
)

reconcile_total = Counter(
    "kubevigil_reconcile_total",
    "Reconciles by watched kind and result",
    ["kind", "result"],
)

reconcile_duration_seconds = Histogram(
    "kubevigil_reconcile_duration_seconds",
    "Wall-clock time of a single reconcile",
    ["kind"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

rule_evaluations_total = Counter(
    "kubevigil_rule_evaluations_total",
    "Single-object rule evaluations",
    ["rule"],
)


def set_violation(
    rule_kind: str,
    rule_name: str,
    resource_namespace: str,
    resource_name: str,
    kind: str,
    active: bool,
) -> None:
    violation.labels(
        rule=rule_kind,
        rule_name=rule_name,
        resource_namespace=resource_namespace,
        resource_name=resource_name,
        kind=kind,
    ).set(1 if active else 0)
