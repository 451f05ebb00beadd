"""Tests for the kubernetes_asyncio-backed object store."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from kubevigil.errors import ConflictError, NotFoundError, StoreError
from kubevigil.models.resources import ListOptions, ObjectKey
from kubevigil.store.kubernetes import KubernetesStore, builtin_kinds, plural_of

_CUSTOM = {"ClusterRuleSecretUnused": False, "RulePodRestarts": True, "Notifier": False}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _store() -> tuple[KubernetesStore, MagicMock, MagicMock]:
    api_client = MagicMock()
    api_client.sanitize_for_serialization = MagicMock(side_effect=lambda model: dict(model))
    store = KubernetesStore(api_client, "kubevigil.io", "v1", _CUSTOM)
    custom = MagicMock()
    store._custom = custom
    core = MagicMock()
    store._apis["CoreV1Api"] = core
    return store, custom, core


# ---------------------------------------------------------------------------
# Custom kinds
# ---------------------------------------------------------------------------


class TestCustomKinds:
    async def test_get_cluster_scoped(self) -> None:
        store, custom, _ = _store()
        custom.get_cluster_custom_object = AsyncMock(return_value={"metadata": {"name": "team"}})

        obj = await store.get("Notifier", ObjectKey("", "team"))

        assert obj == {"metadata": {"name": "team"}}
        custom.get_cluster_custom_object.assert_called_once_with("kubevigil.io", "v1", "notifiers", "team")

    async def test_list_namespaced_sets_kind(self) -> None:
        store, custom, _ = _store()
        custom.list_namespaced_custom_object = AsyncMock(return_value={"items": [{"metadata": {"name": "r"}}]})

        items = await store.list("RulePodRestarts", ListOptions(namespace="web"))

        assert items == [{"kind": "RulePodRestarts", "metadata": {"name": "r"}}]
        args = custom.list_namespaced_custom_object.call_args.args
        assert args == ("kubevigil.io", "v1", "web", "rulepodrestarts")

    async def test_update_status_uses_status_subresource(self) -> None:
        store, custom, _ = _store()
        custom.replace_cluster_custom_object_status = AsyncMock(return_value={"status": {}})
        obj = {"metadata": {"name": "unused"}, "status": {"violations": {}}}

        await store.update_status("ClusterRuleSecretUnused", obj)

        custom.replace_cluster_custom_object_status.assert_called_once_with(
            "kubevigil.io", "v1", "clusterrulesecretunuseds", "unused", obj
        )

    async def test_status_update_of_builtin_kind_is_rejected(self) -> None:
        store, _, _ = _store()
        with pytest.raises(StoreError, match="custom kinds"):
            await store.update_status("Secret", {"metadata": {"name": "a"}})


# ---------------------------------------------------------------------------
# Built-in kinds
# ---------------------------------------------------------------------------


class TestBuiltinKinds:
    async def test_get_namespaced_converts_to_dict(self) -> None:
        store, _, core = _store()
        core.read_namespaced_secret = AsyncMock(return_value={"metadata": {"name": "db"}})

        obj = await store.get("Secret", ObjectKey("default", "db"))

        core.read_namespaced_secret.assert_called_once_with("db", "default")
        assert obj["kind"] == "Secret"
        assert obj["apiVersion"] == "v1"

    async def test_list_with_selectors_across_namespaces(self) -> None:
        store, _, core = _store()
        result = MagicMock()
        result.items = [{"metadata": {"name": "p"}}]
        core.list_pod_for_all_namespaces = AsyncMock(return_value=result)

        items = await store.list("Pod", ListOptions(name="p", match_labels={"app": "web"}))

        core.list_pod_for_all_namespaces.assert_called_once_with(
            label_selector="app=web", field_selector="metadata.name=p"
        )
        assert items[0]["kind"] == "Pod"

    async def test_unsupported_kind(self) -> None:
        store, _, _ = _store()
        with pytest.raises(StoreError, match="unsupported kind"):
            await store.get("CronJob", ObjectKey("default", "x"))

    def test_list_call_for_watch(self) -> None:
        store, custom, core = _store()
        fn, kwargs = store.list_call("Secret")
        assert fn is core.list_secret_for_all_namespaces
        assert kwargs == {}

        fn, kwargs = store.list_call("RulePodRestarts")
        assert fn is custom.list_cluster_custom_object
        assert kwargs == {"group": "kubevigil.io", "version": "v1", "plural": "rulepodrestarts"}

    def test_normalize_dict_event(self) -> None:
        store, _, _ = _store()
        assert store.normalize("Notifier", {"metadata": {"name": "x"}})["kind"] == "Notifier"

    def test_builtin_kinds_cover_rule_targets(self) -> None:
        kinds = builtin_kinds()
        for kind in ("Pod", "Secret", "ConfigMap", "Service", "Namespace", "HorizontalPodAutoscaler",
                     "PodDisruptionBudget", "Deployment"):
            assert kind in kinds


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.parametrize(
        ("status", "error_type"),
        [(404, NotFoundError), (409, ConflictError), (500, StoreError), (403, StoreError)],
    )
    async def test_api_exceptions_are_translated(self, status: int, error_type: type[StoreError]) -> None:
        store, custom, _ = _store()
        custom.get_cluster_custom_object = AsyncMock(side_effect=ApiException(status=status, reason="x"))

        with pytest.raises(error_type) as excinfo:
            await store.get("Notifier", ObjectKey("", "team"))
        assert excinfo.value.status == status

    async def test_connection_errors_become_store_errors(self) -> None:
        store, _, core = _store()
        core.read_namespace = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))

        with pytest.raises(StoreError):
            await store.get("Namespace", ObjectKey("", "payments"))

    def test_plural(self) -> None:
        assert plural_of("Notifier") == "notifiers"
        assert plural_of("ClusterRulePodRestarts") == "clusterrulepodrestarts"
