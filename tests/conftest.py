"""Shared fixtures for kubevigil tests.

Provides an in-memory ObjectStore so rules, reconcilers and the controller
manager can be exercised without a Kubernetes API server.
"""

from __future__ import annotations

import copy
import itertools
from collections.abc import Callable

import pytest

from kubevigil.errors import NotFoundError, StoreError
from kubevigil.models.config import KubeVigilConfig
from kubevigil.models.resources import KubeObject, ListOptions, ObjectKey, object_labels
from kubevigil.notifications.manager import NotifierCache
from kubevigil.rules.cache import RuleCache

# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class FakeStore:
    """ObjectStore over a dict, mimicking the API server where it matters.

    * updates bump ``resourceVersion``; a spec change bumps ``generation``;
    * an object with a deletion timestamp disappears once its last
      finalizer is removed;
    * ``fail_on`` makes the next matching call raise StoreError.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, ObjectKey], KubeObject] = {}
        self.calls: list[tuple[str, str]] = []
        self._fail: dict[tuple[str, str], StoreError] = {}
        self._versions = itertools.count(1)

    def add(self, obj: KubeObject) -> KubeObject:
        stored = copy.deepcopy(obj)
        meta = stored.setdefault("metadata", {})
        meta.setdefault("generation", 1)
        meta["resourceVersion"] = str(next(self._versions))
        self.objects[(stored["kind"], ObjectKey.of(stored))] = stored
        return copy.deepcopy(stored)

    def remove(self, kind: str, key: ObjectKey) -> None:
        self.objects.pop((kind, key), None)

    def peek(self, kind: str, key: ObjectKey) -> KubeObject | None:
        obj = self.objects.get((kind, key))
        return copy.deepcopy(obj) if obj is not None else None

    def fail_on(self, method: str, kind: str, error: StoreError | None = None) -> None:
        self._fail[(method, kind)] = error or StoreError(f"injected {method} failure for {kind}", status=500)

    def _maybe_fail(self, method: str, kind: str) -> None:
        self.calls.append((method, kind))
        error = self._fail.pop((method, kind), None)
        if error is not None:
            raise error

    async def get(self, kind: str, key: ObjectKey) -> KubeObject:
        self._maybe_fail("get", kind)
        obj = self.objects.get((kind, key))
        if obj is None:
            raise NotFoundError(kind, str(key))
        return copy.deepcopy(obj)

    async def list(self, kind: str, options: ListOptions | None = None) -> list[KubeObject]:
        self._maybe_fail("list", kind)
        options = options or ListOptions()
        result = []
        for (obj_kind, key), obj in sorted(self.objects.items(), key=lambda item: (item[0][0], item[0][1])):
            if obj_kind != kind:
                continue
            if options.namespace and key.namespace != options.namespace:
                continue
            if options.name and key.name != options.name:
                continue
            labels = object_labels(obj)
            if any(labels.get(k) != v for k, v in options.match_labels.items()):
                continue
            result.append(copy.deepcopy(obj))
        return result

    async def update(self, kind: str, obj: KubeObject) -> KubeObject:
        self._maybe_fail("update", kind)
        key = ObjectKey.of(obj)
        current = self.objects.get((kind, key))
        if current is None:
            raise NotFoundError(kind, str(key))
        stored = copy.deepcopy(obj)
        stored["status"] = copy.deepcopy(current.get("status"))
        meta = stored.setdefault("metadata", {})
        meta["generation"] = current["metadata"].get("generation", 1)
        if stored.get("spec") != current.get("spec"):
            meta["generation"] += 1
        meta["resourceVersion"] = str(next(self._versions))
        if meta.get("deletionTimestamp") and not meta.get("finalizers"):
            del self.objects[(kind, key)]
            return copy.deepcopy(stored)
        self.objects[(kind, key)] = stored
        return copy.deepcopy(stored)

    async def update_status(self, kind: str, obj: KubeObject) -> KubeObject:
        self._maybe_fail("update_status", kind)
        key = ObjectKey.of(obj)
        current = self.objects.get((kind, key))
        if current is None:
            raise NotFoundError(kind, str(key))
        current["status"] = copy.deepcopy(obj.get("status"))
        current["metadata"]["resourceVersion"] = str(next(self._versions))
        return copy.deepcopy(current)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def config() -> KubeVigilConfig:
    return KubeVigilConfig()


@pytest.fixture
def rule_cache() -> RuleCache:
    return RuleCache()


@pytest.fixture
def notifier_cache() -> NotifierCache:
    cache = NotifierCache()
    cache.mark_ready()
    return cache


@pytest.fixture
def make_object() -> Callable[..., KubeObject]:
    """Factory for minimal Kubernetes objects."""

    def _make(
        kind: str,
        name: str,
        namespace: str = "",
        labels: dict[str, str] | None = None,
        spec: dict | None = None,
        status: dict | None = None,
        **extra: object,
    ) -> KubeObject:
        metadata: dict[str, object] = {"name": name}
        if namespace:
            metadata["namespace"] = namespace
        if labels:
            metadata["labels"] = labels
        obj: KubeObject = {"kind": kind, "metadata": metadata}
        if spec is not None:
            obj["spec"] = spec
        if status is not None:
            obj["status"] = status
        obj.update(extra)
        return obj

    return _make
