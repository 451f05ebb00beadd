"""Namespace rules."""

from __future__ import annotations

import re
from typing import Any

from kubevigil.errors import RuleConfigurationError
from kubevigil.models.resources import KubeObject, RequiredLabel, object_labels
from kubevigil.rules.base import Rule


def validate_required_label(required: RequiredLabel, labels: dict[str, str]) -> str:
    """Return a violation message, or "" when *labels* satisfy *required*.

    Raises:
        RuleConfigurationError: the regexp in *required* does not compile.
    """
    if required.key not in labels:
        return f"doesnt have required label `{required.key}`"
    value = labels[required.key]
    if required.match in ("", "exact"):
        if value != required.value:
            return f"has incorrect label value `{value}` (expect `{required.value}`) for label `{required.key}`"
    elif required.match == "regexp":
        try:
            pattern = re.compile(required.value)
        except re.error as exc:
            raise RuleConfigurationError(f"invalid label regexp {required.value!r}: {exc}") from exc
        if not pattern.search(value):
            return f"has incorrect label value `{value}` (regex match `{required.value}`) for label `{required.key}`"
    return ""


class ClusterRuleNamespaceRequiredLabel(Rule):
    """Fires when a Namespace lacks a label, or its value does not match."""

    kind = "ClusterRuleNamespaceRequiredLabel"
    resource_kind = "Namespace"

    def _load_spec(self, spec: dict[str, Any]) -> None:
        self.label = RequiredLabel.from_dict(spec.get("label"))

    async def check(self, obj: KubeObject) -> tuple[bool, str]:
        message = validate_required_label(self.label, object_labels(obj))
        if message:
            return True, message
        return False, "Namespace has required label"
