"""Application bootstrap for kubevigil.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → store → controllers → REST

Shutdown is graceful: components are stopped in reverse startup order.
Each component's stop error is caught and logged independently so that a
single failure does not prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from kubevigil.config import load_config
from kubevigil.models.config import KubeVigilConfig
from kubevigil.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeVigilApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already
    stopped) is safe.
    """

    def __init__(self) -> None:
        self.config: KubeVigilConfig | None = None

        self._api_client: object | None = None
        self._store: object | None = None
        self._manager: object | None = None
        self._rest_server: object | None = None

        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("kubevigil starting", version=_kubevigil_version())

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Object store ---------------------------------------------
        await self._start_store()

        # --- 5. Controllers ----------------------------------------------
        await self._start_controllers()

        # --- 6. REST API -------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("kubevigil started", port=self.config.api.port)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_store(self) -> None:
        """Build the KubernetesStore for built-in kinds, rule kinds and Notifier."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting object store")
        try:
            from kubevigil.controllers.notifier_reconciler import NOTIFIER_KIND
            from kubevigil.rules.catalog import RuleCatalog
            from kubevigil.store.kubernetes import KubernetesStore

            custom_kinds = {**RuleCatalog().rule_kinds(), NOTIFIER_KIND: False}
            self._store = KubernetesStore(
                self._api_client,  # type: ignore[arg-type]
                group=self.config.rules.group,
                version=self.config.rules.version,
                custom_kinds=custom_kinds,
            )
            self._log.info(
                "object store started",
                group=self.config.rules.group,
                version=self.config.rules.version,
                custom_kinds=len(custom_kinds),
            )
        except Exception as exc:
            raise _ComponentError("store", exc) from exc

    async def _start_controllers(self) -> None:
        """Load notifiers, then start work queues and watchers."""
        assert self._log is not None
        assert self.config is not None
        assert self._store is not None
        self._log.debug("starting controllers")
        try:
            from kubevigil.controllers.event_filter import EventFilter
            from kubevigil.controllers.manager import ControllerManager
            from kubevigil.controllers.watcher import Dispatch, ResourceWatcher

            store = self._store

            def _watcher(kind: str, event_filter: EventFilter, dispatch: Dispatch) -> ResourceWatcher:
                return ResourceWatcher(kind, store, event_filter, dispatch)  # type: ignore[arg-type]

            manager = ControllerManager(store, self.config, watcher_factory=_watcher)  # type: ignore[arg-type]
            await manager.start()
            self._manager = manager
            self._log.info("controllers started", kinds=manager.watched_kinds())
        except Exception as exc:
            raise _ComponentError("controllers", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        assert self._manager is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from kubevigil.api import create_app

            fastapi_app = create_app(
                rule_cache=self._manager.rule_cache,  # type: ignore[attr-defined]
                notifier_cache=self._manager.notifier_cache,  # type: ignore[attr-defined]
                config=self.config,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubevigil shutting down")

        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        await self._stop_component("controllers", self._manager)
        self._manager = None
        self._store = None
        await self._stop_k8s_client()

        log.info("kubevigil stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()  # type: ignore[attr-defined]
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _kubevigil_version() -> str:
    from kubevigil import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeVigilApp()
    loop = asyncio.get_running_loop()

    shutdown_triggered = False

    def _request_shutdown() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            return
        shutdown_triggered = True
        asyncio.create_task(app.stop(), name="shutdown")

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app._running:
            await asyncio.sleep(1)
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app._running:
            await app.stop()


def run() -> None:
    """Console-script entrypoint."""
    asyncio.run(main())
