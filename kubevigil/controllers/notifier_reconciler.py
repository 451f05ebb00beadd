"""Notifier reconciliation.

Keeps the NotifierCache in step with the Notifier custom resources and
drives delivery: every reconcile of an existing notifier sends what is due,
persists the alert map into the notifier status and requeues itself after
``spec.notifyInterval`` seconds.
"""

from __future__ import annotations

import copy

import structlog

from kubevigil.controllers.event_filter import EventFilter
from kubevigil.controllers.queue import jittered_delay
from kubevigil.errors import NotifierNotFoundError, StoreError, ignore_not_found
from kubevigil.models.config import ControllerConfig, NotificationConfig
from kubevigil.models.requests import DONE, ReconcileRequest, ReconcileResult
from kubevigil.models.resources import KubeObject, ObjectKey, deletion_timestamp
from kubevigil.notifications import apply_spec, build_notifier
from kubevigil.notifications.manager import Notifier, NotifierCache
from kubevigil.observability.logging import get_logger
from kubevigil.store.base import ObjectStore

NOTIFIER_KIND = "Notifier"
NOTIFIER_FINALIZER = "notifier.finalizers.kubevigil.io"
NOTIFIER_DELETED_MESSAGE = "recover alert since notifier is being deleted"

_logger = get_logger("controllers.notifier")


def _finalizers(obj: KubeObject) -> list[str]:
    return list((obj.get("metadata") or {}).get("finalizers") or [])


class NotifierReconciler:
    """Reconciles Notifier objects (cluster-scoped, keyed by name)."""

    kind = NOTIFIER_KIND

    def __init__(
        self,
        store: ObjectStore,
        notifier_cache: NotifierCache,
        event_filter: EventFilter,
        config: ControllerConfig,
        notifications: NotificationConfig,
    ) -> None:
        self._store = store
        self._notifiers = notifier_cache
        self._filter = event_filter
        self._config = config
        self._notifications = notifications

    async def load_all(self) -> int:
        """Populate the cache from every Notifier object and mark it ready.

        Raises:
            StoreError: the initial listing failed; the cache stays not ready.
        """
        objects = await self._store.list(NOTIFIER_KIND)
        for obj in objects:
            if deletion_timestamp(obj) is not None:
                continue
            self._notifiers.save(self._build(obj))
        self._notifiers.mark_ready()
        _logger.info("notifier_cache_loaded", notifiers=len(self._notifiers.names()))
        return len(objects)

    async def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        key = ObjectKey(namespace="", name=request.name)
        log = _logger.bind(notifier=request.name)
        try:
            obj = await ignore_not_found(self._store.get(NOTIFIER_KIND, key))
            if obj is None:
                if self._notifiers.delete(request.name) is not None:
                    log.info("notifier_removed")
                self._filter.forget(NOTIFIER_KIND, key)
                return DONE

            if deletion_timestamp(obj) is not None:
                await self._finalize(obj, log)
                return DONE

            if NOTIFIER_FINALIZER not in _finalizers(obj):
                obj["metadata"]["finalizers"] = [*_finalizers(obj), NOTIFIER_FINALIZER]
                obj = await self._store.update(NOTIFIER_KIND, obj)

            try:
                notifier = self._notifiers.get(request.name)
            except NotifierNotFoundError:
                notifier = self._build(obj)
                self._notifiers.save(notifier)
                self._record(obj)
                log.info("notifier_added", channels=[c.channel_name for c in notifier.channels])
                return ReconcileResult.after(notifier.notify_interval)

            apply_spec(
                notifier,
                obj,
                self._notifications.default_interval_seconds,
                self._notifications.http_timeout_seconds,
            )
            await notifier.notify()
            await self._persist(notifier, obj)
            log.debug("notifier_reconciled", alerts=len(notifier.alerts))
            return ReconcileResult.after(notifier.notify_interval)
        except StoreError as exc:
            delay = jittered_delay(self._config.retry_min_seconds, self._config.retry_max_seconds)
            log.error("reconcile_failed", error=str(exc), retry_in=delay.total_seconds())
            return ReconcileResult(requeue_after=delay)

    async def _finalize(self, obj: KubeObject, log: structlog.stdlib.BoundLogger) -> None:
        name = obj["metadata"]["name"]
        notifier = self._notifiers.delete(name)
        if NOTIFIER_FINALIZER not in _finalizers(obj):
            return
        if notifier is None:
            notifier = self._build(obj)
        log.info("notifier_being_deleted_clearing_alerts", alerts=len(notifier.alerts))
        notifier.clear_all_alerts(NOTIFIER_DELETED_MESSAGE)
        await notifier.notify()
        obj["metadata"]["finalizers"] = [f for f in _finalizers(obj) if f != NOTIFIER_FINALIZER]
        await ignore_not_found(self._store.update(NOTIFIER_KIND, obj))

    async def _persist(self, notifier: Notifier, obj: KubeObject) -> None:
        body = copy.deepcopy(obj)
        body["status"] = notifier.to_status()
        body["metadata"].pop("resourceVersion", None)
        stored = await self._store.update_status(NOTIFIER_KIND, body)
        self._record(stored)

    def _record(self, obj: KubeObject) -> None:
        generation = int((obj.get("metadata") or {}).get("generation") or 0)
        self._filter.record_generation(NOTIFIER_KIND, ObjectKey.of(obj), generation)

    def _build(self, obj: KubeObject) -> Notifier:
        return build_notifier(
            obj,
            default_interval=self._notifications.default_interval_seconds,
            timeout=self._notifications.http_timeout_seconds,
        )
