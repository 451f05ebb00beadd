"""Controller wiring.

ControllerManager owns one WorkQueue per watched resource kind plus one for
Notifier objects, the reconcilers behind them and the watchers feeding them.

Routing of watch events to queues:

    Notifier            -> notifier queue, request ("", name)
    rule kind           -> queue of the rule definition's primary resource
                           kind, request (ns, "RuleKind/name")
    watched object kind -> its own queue, request (ns, name)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta

from kubevigil.controllers.event_filter import EventFilter, WatchEvent
from kubevigil.controllers.notifier_reconciler import NOTIFIER_KIND, NotifierReconciler
from kubevigil.controllers.queue import ReconcileFn, WorkQueue
from kubevigil.controllers.reconciler import Reconciler
from kubevigil.models.config import KubeVigilConfig
from kubevigil.models.requests import ReconcileRequest
from kubevigil.notifications.manager import NotifierCache
from kubevigil.observability.logging import get_logger
from kubevigil.rules.cache import RuleCache
from kubevigil.rules.catalog import RuleCatalog
from kubevigil.store.base import ObjectStore

_logger = get_logger("controllers.manager")

WatcherFactory = Callable[[str, EventFilter, Callable[[WatchEvent], None]], object]


class ControllerManager:
    """Builds and runs every queue, reconciler and watcher.

    Args:
        store:           Object store shared by all reconcilers.
        config:          Full application config.
        catalog:         Rule definitions; defaults to every built-in rule.
        watcher_factory: ``(kind, event_filter, dispatch) -> watcher`` with
                         async ``start``/``stop``. None runs without watchers,
                         requests then only arrive through ``enqueue``.
    """

    def __init__(
        self,
        store: ObjectStore,
        config: KubeVigilConfig,
        catalog: RuleCatalog | None = None,
        rule_cache: RuleCache | None = None,
        notifier_cache: NotifierCache | None = None,
        watcher_factory: WatcherFactory | None = None,
    ) -> None:
        self.config = config
        self.catalog = catalog or RuleCatalog()
        self.rule_cache = rule_cache or RuleCache()
        self.notifier_cache = notifier_cache or NotifierCache()
        self._store = store
        self._watcher_factory = watcher_factory

        custom_kinds = {*self.catalog.rule_kinds(), NOTIFIER_KIND}
        self.event_filter = EventFilter(
            min_check_interval=timedelta(seconds=config.controller.min_check_interval_seconds),
            custom_kinds=custom_kinds,
        )

        ctl = config.controller
        self.notifier_reconciler = NotifierReconciler(
            store, self.notifier_cache, self.event_filter, ctl, config.notifications
        )
        self.queues: dict[str, WorkQueue] = {
            NOTIFIER_KIND: self._queue(NOTIFIER_KIND, self.notifier_reconciler.reconcile),
        }
        self.reconcilers: dict[str, Reconciler] = {}
        for kind in self.catalog.watched_kinds():
            reconciler = Reconciler(
                kind, store, self.catalog, self.rule_cache, self.notifier_cache, self.event_filter, ctl
            )
            self.reconcilers[kind] = reconciler
            self.queues[kind] = self._queue(kind, reconciler.reconcile)
        self._watchers: list[object] = []

    def _queue(self, kind: str, fn: ReconcileFn) -> WorkQueue:
        ctl = self.config.controller
        return WorkQueue(
            kind,
            fn,
            workers=ctl.workers_per_kind,
            timeout_seconds=ctl.reconcile_timeout_seconds,
            retry_min_seconds=ctl.retry_min_seconds,
            retry_max_seconds=ctl.retry_max_seconds,
        )

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def enqueue(self, event: WatchEvent) -> None:
        """Route an accepted watch event to the queue that reconciles it."""
        key = event.key
        if event.kind == NOTIFIER_KIND:
            self.queues[NOTIFIER_KIND].add(ReconcileRequest(namespace="", name=key.name))
            return
        if event.kind in self.catalog.rule_kinds():
            definition = self.catalog.by_rule_kind(event.kind)
            request = ReconcileRequest.for_rule(event.kind, key.namespace, key.name)
            self.queues[definition.resource_kind].add(request)
            return
        queue = self.queues.get(event.kind)
        if queue is None:
            _logger.warning("event_for_unwatched_kind", kind=event.kind, key=str(key))
            return
        queue.add(ReconcileRequest(namespace=key.namespace, name=key.name))

    def watched_kinds(self) -> list[str]:
        """Every kind a watcher is needed for: notifiers, rules, then targets."""
        return [NOTIFIER_KIND, *self.catalog.rule_kinds(), *self.catalog.watched_kinds()]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load notifiers, then start workers, then watchers.

        Raises:
            StoreError: the initial notifier listing failed.
        """
        await self.notifier_reconciler.load_all()
        for queue in self.queues.values():
            await queue.start()
        if self._watcher_factory is not None:
            for kind in self.watched_kinds():
                watcher = self._watcher_factory(kind, self.event_filter, self.enqueue)
                await watcher.start()  # type: ignore[attr-defined]
                self._watchers.append(watcher)
        _logger.info("controller_manager_started", queues=len(self.queues), watchers=len(self._watchers))

    async def stop(self) -> None:
        for watcher in reversed(self._watchers):
            await watcher.stop()  # type: ignore[attr-defined]
        self._watchers.clear()
        for queue in reversed(list(self.queues.values())):
            await queue.stop()
        _logger.info("controller_manager_stopped")
