"""kubernetes_asyncio-backed ObjectStore.

Built-in kinds go through their typed API groups and are converted to plain
camelCase dicts with ``ApiClient.sanitize_for_serialization``. Rule and
notifier custom resources go through ``CustomObjectsApi``, which already
speaks dicts.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubevigil.errors import ConflictError, NotFoundError, StoreError
from kubevigil.models.resources import KubeObject, ListOptions, ObjectKey, object_name, object_namespace

_log = structlog.get_logger(component="store.kubernetes")


@dataclass(frozen=True)
class _BuiltinKind:
    api: str  # attribute of kubernetes_asyncio.client
    resource: str  # snake_case suffix used in method names
    namespaced: bool
    api_version: str


_BUILTIN_KINDS: dict[str, _BuiltinKind] = {
    "Pod": _BuiltinKind("CoreV1Api", "pod", True, "v1"),
    "Secret": _BuiltinKind("CoreV1Api", "secret", True, "v1"),
    "ConfigMap": _BuiltinKind("CoreV1Api", "config_map", True, "v1"),
    "Service": _BuiltinKind("CoreV1Api", "service", True, "v1"),
    "Namespace": _BuiltinKind("CoreV1Api", "namespace", False, "v1"),
    "Deployment": _BuiltinKind("AppsV1Api", "deployment", True, "apps/v1"),
    "ReplicaSet": _BuiltinKind("AppsV1Api", "replica_set", True, "apps/v1"),
    "HorizontalPodAutoscaler": _BuiltinKind(
        "AutoscalingV1Api", "horizontal_pod_autoscaler", True, "autoscaling/v1"
    ),
    "PodDisruptionBudget": _BuiltinKind("PolicyV1Api", "pod_disruption_budget", True, "policy/v1"),
}


def plural_of(kind: str) -> str:
    """Lower-cased plural used in custom resource URLs.

    Kinds already ending in "s" (``ClusterRulePodRestarts``) are kept as is.
    """
    lowered = kind.lower()
    return lowered if lowered.endswith("s") else lowered + "s"


def _translate(exc: ApiException, kind: str, key: str) -> StoreError:
    if exc.status == 404:
        return NotFoundError(kind, key)
    if exc.status == 409:
        return ConflictError(f"{kind} {key!r} was modified concurrently: {exc.reason}", status=409)
    return StoreError(f"{kind} {key!r}: {exc.status} {exc.reason}", status=exc.status)


class KubernetesStore:
    """ObjectStore over a kubernetes_asyncio ApiClient.

    Args:
        api_client:   Shared ApiClient (configured by the app bootstrap).
        group:        API group of the custom resources.
        version:      API version of the custom resources.
        custom_kinds: Custom kind name -> namespaced flag.
    """

    def __init__(
        self,
        api_client: k8s_client.ApiClient,
        group: str,
        version: str,
        custom_kinds: Mapping[str, bool],
    ) -> None:
        self._api_client = api_client
        self._group = group
        self._version = version
        self._custom_kinds = dict(custom_kinds)
        self._apis: dict[str, Any] = {}
        self._custom = k8s_client.CustomObjectsApi(api_client)

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    async def get(self, kind: str, key: ObjectKey) -> KubeObject:
        if kind in self._custom_kinds:
            if self._custom_kinds[kind]:
                call = self._custom.get_namespaced_custom_object(
                    self._group, self._version, key.namespace, plural_of(kind), key.name
                )
            else:
                call = self._custom.get_cluster_custom_object(self._group, self._version, plural_of(kind), key.name)
            return await self._call(call, kind, str(key))

        builtin = self._builtin(kind)
        api = self._api(builtin.api)
        if builtin.namespaced:
            call = getattr(api, f"read_namespaced_{builtin.resource}")(key.name, key.namespace)
        else:
            call = getattr(api, f"read_{builtin.resource}")(key.name)
        return self._to_dict(kind, builtin, await self._call(call, kind, str(key)))

    async def list(self, kind: str, options: ListOptions | None = None) -> list[KubeObject]:
        options = options or ListOptions()
        kwargs: dict[str, str] = {}
        if options.label_selector():
            kwargs["label_selector"] = options.label_selector()
        if options.field_selector():
            kwargs["field_selector"] = options.field_selector()
        where = options.namespace or "*"

        if kind in self._custom_kinds:
            if self._custom_kinds[kind] and options.namespace:
                call = self._custom.list_namespaced_custom_object(
                    self._group, self._version, options.namespace, plural_of(kind), **kwargs
                )
            else:
                call = self._custom.list_cluster_custom_object(self._group, self._version, plural_of(kind), **kwargs)
            result = await self._call(call, kind, where)
            items = result.get("items") or []
            for item in items:
                item.setdefault("kind", kind)
            return items

        builtin = self._builtin(kind)
        api = self._api(builtin.api)
        if not builtin.namespaced:
            call = getattr(api, f"list_{builtin.resource}")(**kwargs)
        elif options.namespace:
            call = getattr(api, f"list_namespaced_{builtin.resource}")(options.namespace, **kwargs)
        else:
            call = getattr(api, f"list_{builtin.resource}_for_all_namespaces")(**kwargs)
        result = await self._call(call, kind, where)
        return [self._to_dict(kind, builtin, item) for item in result.items or []]

    async def update(self, kind: str, obj: KubeObject) -> KubeObject:
        key = ObjectKey.of(obj)
        if kind in self._custom_kinds:
            if self._custom_kinds[kind]:
                call = self._custom.replace_namespaced_custom_object(
                    self._group, self._version, key.namespace, plural_of(kind), key.name, obj
                )
            else:
                call = self._custom.replace_cluster_custom_object(
                    self._group, self._version, plural_of(kind), key.name, obj
                )
            return await self._call(call, kind, str(key))

        builtin = self._builtin(kind)
        api = self._api(builtin.api)
        if builtin.namespaced:
            call = getattr(api, f"replace_namespaced_{builtin.resource}")(key.name, key.namespace, obj)
        else:
            call = getattr(api, f"replace_{builtin.resource}")(key.name, obj)
        return self._to_dict(kind, builtin, await self._call(call, kind, str(key)))

    async def update_status(self, kind: str, obj: KubeObject) -> KubeObject:
        if kind not in self._custom_kinds:
            raise StoreError(f"status updates are only supported for custom kinds, got {kind}")
        name, namespace = object_name(obj), object_namespace(obj)
        if self._custom_kinds[kind]:
            call = self._custom.replace_namespaced_custom_object_status(
                self._group, self._version, namespace, plural_of(kind), name, obj
            )
        else:
            call = self._custom.replace_cluster_custom_object_status(
                self._group, self._version, plural_of(kind), name, obj
            )
        return await self._call(call, kind, f"{namespace}/{name}")

    # ------------------------------------------------------------------
    # Watch support
    # ------------------------------------------------------------------

    def list_call(self, kind: str) -> tuple[Callable[..., Awaitable[Any]], dict[str, Any]]:
        """Return the cluster-wide list function and its fixed arguments for a watch stream."""
        if kind in self._custom_kinds:
            return self._custom.list_cluster_custom_object, {
                "group": self._group,
                "version": self._version,
                "plural": plural_of(kind),
            }
        builtin = self._builtin(kind)
        api = self._api(builtin.api)
        if builtin.namespaced:
            return getattr(api, f"list_{builtin.resource}_for_all_namespaces"), {}
        return getattr(api, f"list_{builtin.resource}"), {}

    def normalize(self, kind: str, raw: Any) -> KubeObject:
        """Convert a watch event object to the dict shape returned by get/list."""
        if isinstance(raw, dict):
            obj = dict(raw)
            obj.setdefault("kind", kind)
            return obj
        return self._to_dict(kind, self._builtin(kind), raw)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _builtin(self, kind: str) -> _BuiltinKind:
        try:
            return _BUILTIN_KINDS[kind]
        except KeyError:
            raise StoreError(f"unsupported kind {kind!r}") from None

    def _api(self, name: str) -> Any:
        api = self._apis.get(name)
        if api is None:
            api = getattr(k8s_client, name)(self._api_client)
            self._apis[name] = api
        return api

    def _to_dict(self, kind: str, builtin: _BuiltinKind, model: Any) -> KubeObject:
        obj: KubeObject = self._api_client.sanitize_for_serialization(model)
        obj["kind"] = kind
        obj.setdefault("apiVersion", builtin.api_version)
        return obj

    async def _call(self, call: Awaitable[Any], kind: str, key: str) -> Any:
        try:
            return await call
        except ApiException as exc:
            error = _translate(exc, kind, key)
            if not isinstance(error, NotFoundError):
                _log.warning("store_call_failed", kind=kind, key=key, status=exc.status, reason=exc.reason)
            raise error from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            _log.warning("store_connection_failed", kind=kind, key=key, error=str(exc))
            raise StoreError(f"{kind} {key!r}: {exc}") from exc


def builtin_kinds() -> list[str]:
    return list(_BUILTIN_KINDS)
