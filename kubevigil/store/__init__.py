"""Object store access.

ObjectStore      -- protocol every store implements (get / list / update / update_status).
KubernetesStore  -- kubernetes_asyncio implementation used in production.
"""

from kubevigil.store.base import ObjectStore

__all__ = ["ObjectStore"]
