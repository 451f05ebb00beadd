"""Tests for the kubevigil REST API: probes, metrics and cache status views."""

from __future__ import annotations

from fastapi.testclient import TestClient
from hypothesis import given, settings
from hypothesis import strategies as st

from kubevigil import __version__
from kubevigil.api.app import create_app
from kubevigil.models.alerts import Alert
from kubevigil.models.resources import ObjectKey
from kubevigil.notifications.manager import Notifier, NotifierCache
from kubevigil.rules.cache import RuleCache
from kubevigil.rules.pod import ClusterRulePodRestarts, RulePodRestarts

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _caches(ready: bool = True) -> tuple[RuleCache, NotifierCache]:
    notifiers = NotifierCache()
    if ready:
        notifiers.mark_ready()
    return RuleCache(), notifiers


def _client(rule_cache: RuleCache, notifier_cache: NotifierCache) -> TestClient:
    return TestClient(create_app(rule_cache=rule_cache, notifier_cache=notifier_cache), raise_server_exceptions=False)


# ---------------------------------------------------------------------------
# Probes and metrics
# ---------------------------------------------------------------------------


class TestProbes:
    def test_healthz(self) -> None:
        response = _client(*_caches()).get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    def test_readyz_waits_for_notifier_cache(self) -> None:
        rule_cache, notifier_cache = _caches(ready=False)
        client = _client(rule_cache, notifier_cache)

        response = client.get("/readyz")
        assert response.status_code == 503
        assert response.json()["ready"] is False

        notifier_cache.save(Notifier(name="team"))
        notifier_cache.mark_ready()
        response = client.get("/readyz")
        assert response.status_code == 200
        assert response.json() == {"ready": True, "notifiers": 1, "rules": 0}

    def test_metrics_exposition(self) -> None:
        response = _client(*_caches()).get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "kubevigil_violation" in response.text


# ---------------------------------------------------------------------------
# Notifiers
# ---------------------------------------------------------------------------


class TestNotifierViews:
    def test_list_sorted_by_name(self) -> None:
        rule_cache, notifier_cache = _caches()
        notifier_cache.save(Notifier(name="zeta"))
        notifier_cache.save(Notifier(name="alpha", notify_interval=15))

        body = _client(rule_cache, notifier_cache).get("/api/v1/notifiers").json()

        assert [n["name"] for n in body] == ["alpha", "zeta"]
        assert body[0]["notify_interval"] == 15

    def test_get_shows_alerts(self) -> None:
        rule_cache, notifier_cache = _caches()
        notifier = Notifier(name="team")
        notifier.set_alert(
            "ClusterRulePodRestarts/restarts",
            Alert(resource_kind="Pod", resource_name="web/api", message="too many restarts", violated=True),
        )
        notifier_cache.save(notifier)

        body = _client(rule_cache, notifier_cache).get("/api/v1/notifiers/team").json()

        assert body["alerts"] == [
            {
                "key": "ClusterRulePodRestarts/restarts/web/api",
                "resource_kind": "Pod",
                "resource_name": "web/api",
                "status": "pending",
                "severity": "",
                "message": "too many restarts",
                "suppressed": False,
                "error": "",
            }
        ]

    def test_unknown_notifier_is_404_envelope(self) -> None:
        response = _client(*_caches()).get("/api/v1/notifiers/missing")
        assert response.status_code == 404
        assert response.json()["error"] == "NOTIFIER_NOT_FOUND"
        assert "missing" in response.json()["detail"]

    @settings(max_examples=50, deadline=None)
    @given(name=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=40))
    def test_unknown_names_never_500(self, name: str) -> None:
        response = _client(*_caches()).get(f"/api/v1/notifiers/{name}")
        assert response.status_code in (200, 404, 400)
        body = response.json()
        if response.status_code != 200:
            assert set(body) == {"error", "detail"}


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class TestRuleViews:
    def test_list_and_filter(self, store) -> None:
        rule_cache, notifier_cache = _caches()
        cluster = ClusterRulePodRestarts(
            store,
            {"metadata": {"name": "restarts"}, "spec": {"notification": {"notifiers": ["team"]}}},
        )
        cluster.ready = True
        cluster.status.set_violation(ObjectKey("web", "api"), True)
        namespaced = RulePodRestarts(store, {"metadata": {"name": "lenient", "namespace": "web"}, "spec": {}})
        rule_cache.save(namespaced)
        rule_cache.save(cluster)
        client = _client(rule_cache, notifier_cache)

        body = client.get("/api/v1/rules").json()
        assert [(r["kind"], r["name"]) for r in body] == [
            ("ClusterRulePodRestarts", "restarts"),
            ("RulePodRestarts", "lenient"),
        ]
        assert body[0]["ready"] is True
        assert body[0]["notifiers"] == ["team"]
        assert list(body[0]["violations"]) == ["web/api"]
        assert body[1]["namespace"] == "web"

        filtered = client.get("/api/v1/rules", params={"kind": "RulePodRestarts"}).json()
        assert [r["name"] for r in filtered] == ["lenient"]
