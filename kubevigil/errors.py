"""Exception hierarchy for kubevigil.

StoreError            -- object store (API server) call failed; retried with backoff.
NotFoundError         -- requested object does not exist; treated as "no work".
ConflictError         -- optimistic-concurrency conflict on update.
RuleTypeError         -- object handed to a rule of the wrong kind (wiring defect).
RuleConfigurationError -- rule or watched object carries a configuration the
                          rule cannot evaluate (unknown scale target kind, bad regexp).
NotifierNotFoundError -- rule references a notifier absent from the cache.
DeliveryError         -- a notification channel failed to deliver an alert.
"""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TypeVar

_T = TypeVar("_T")


class KubeVigilError(Exception):
    """Base class for all kubevigil errors."""


class StoreError(KubeVigilError):
    """Raised when a get/list/update against the object store fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """Raised when the requested object does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} {key!r} not found", status=404)
        self.kind = kind
        self.key = key


class ConflictError(StoreError):
    """Raised when an update loses an optimistic-concurrency race."""


class RuleTypeError(KubeVigilError):
    """Raised when a rule is asked to evaluate an object kind it does not handle."""

    def __init__(self, rule: str, expected: list[str], actual: str) -> None:
        super().__init__(f"rule {rule} cannot evaluate kind {actual!r} (expects {', '.join(expected)})")
        self.rule = rule
        self.expected = expected
        self.actual = actual


class RuleConfigurationError(KubeVigilError):
    """Raised when a policy parameter or watched object cannot be evaluated."""


class NotifierNotFoundError(KubeVigilError):
    """Raised when a notifier name is not present in the notifier cache."""

    def __init__(self, name: str) -> None:
        super().__init__(f"notifier {name!r} not found")
        self.name = name


class DeliveryError(KubeVigilError):
    """Raised by a notification channel when an alert could not be delivered."""


async def ignore_not_found(call: Awaitable[_T]) -> _T | None:
    """Await *call*, returning None instead of raising NotFoundError."""
    try:
        return await call
    except NotFoundError:
        return None
