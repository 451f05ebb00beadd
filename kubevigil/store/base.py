"""Object store protocol.

Everything that reads or writes cluster state goes through an ObjectStore,
so reconcilers and rules can be exercised against an in-memory fake.
Objects are plain JSON dicts; ``kind`` is the Kubernetes kind name
(``"Pod"``, ``"HorizontalPodAutoscaler"``, ``"ClusterRuleSecretUnused"``...).
"""

from __future__ import annotations

from typing import Protocol

from kubevigil.models.resources import KubeObject, ListOptions, ObjectKey


class ObjectStore(Protocol):
    """Read/list/update access to Kubernetes objects."""

    async def get(self, kind: str, key: ObjectKey) -> KubeObject:
        """Fetch one object.

        Raises:
            NotFoundError: the object does not exist.
            StoreError: any other API failure.
        """
        ...

    async def list(self, kind: str, options: ListOptions | None = None) -> list[KubeObject]:
        """List objects, optionally filtered by namespace, name and labels.

        An empty namespace lists across all namespaces.
        """
        ...

    async def update(self, kind: str, obj: KubeObject) -> KubeObject:
        """Replace the object (metadata and spec); returns the stored version."""
        ...

    async def update_status(self, kind: str, obj: KubeObject) -> KubeObject:
        """Replace the status subresource; returns the stored version."""
        ...
