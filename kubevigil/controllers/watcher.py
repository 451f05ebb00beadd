"""Watch-stream source for one kind.

ResourceWatcher lists the kind once, replays every item as an ADDED event,
then follows a kubernetes_asyncio watch stream from the list's
resourceVersion. A 410 Gone (expired resourceVersion) triggers a fresh
relist; any other failure reconnects with exponential back-off.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from kubevigil.controllers.event_filter import EventFilter, EventType, WatchEvent
from kubevigil.observability.logging import get_logger
from kubevigil.store.kubernetes import KubernetesStore

Dispatch = Callable[[WatchEvent], None]

_BACKOFF_INITIAL_SECONDS = 1.0
_BACKOFF_MAX_SECONDS = 60.0
_WATCH_TIMEOUT_SECONDS = 300

_logger = get_logger("controllers.watcher")


class _Gone(Exception):
    """The watch resourceVersion has expired; a relist is required."""


class ResourceWatcher:
    """Streams events of one kind through the EventFilter into *dispatch*."""

    def __init__(self, kind: str, store: KubernetesStore, event_filter: EventFilter, dispatch: Dispatch) -> None:
        self.kind = kind
        self._store = store
        self._filter = event_filter
        self._dispatch = dispatch
        self._resource_version: str | None = None
        self._task: asyncio.Task[None] | None = None
        self._watch: watch.Watch | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"watch-{self.kind}")
        _logger.info("watcher_started", kind=self.kind)

    async def stop(self) -> None:
        if self._watch is not None:
            self._watch.stop()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        _logger.info("watcher_stopped", kind=self.kind)

    async def _run(self) -> None:
        backoff = _BACKOFF_INITIAL_SECONDS
        while True:
            try:
                if self._resource_version is None:
                    await self._relist()
                await self._stream()
                backoff = _BACKOFF_INITIAL_SECONDS
            except _Gone:
                _logger.info("watch_resource_version_expired", kind=self.kind)
                self._resource_version = None
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                _logger.warning("watch_failed", kind=self.kind, error=str(exc), retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _BACKOFF_MAX_SECONDS)

    async def _relist(self) -> None:
        list_fn, kwargs = self._store.list_call(self.kind)
        result = await list_fn(**kwargs)
        if isinstance(result, dict):
            items = result.get("items") or []
            version = (result.get("metadata") or {}).get("resourceVersion")
        else:
            items = result.items or []
            version = result.metadata.resource_version
        for item in items:
            self._emit(EventType.ADDED, item)
        self._resource_version = version
        _logger.debug("relisted", kind=self.kind, items=len(items), resource_version=version)

    async def _stream(self) -> None:
        list_fn, kwargs = self._store.list_call(self.kind)
        self._watch = watch.Watch()
        try:
            async with self._watch.stream(
                list_fn,
                resource_version=self._resource_version,
                timeout_seconds=_WATCH_TIMEOUT_SECONDS,
                **kwargs,
            ) as stream:
                async for event in stream:
                    self._handle(event)
        except ApiException as exc:
            if exc.status == 410:
                raise _Gone() from exc
            raise
        finally:
            self._watch = None

    def _handle(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        raw = event.get("raw_object") or event.get("object")
        if event_type == "ERROR":
            if isinstance(raw, dict) and raw.get("code") == 410:
                raise _Gone()
            _logger.warning("watch_error_event", kind=self.kind, detail=raw)
            return
        if event_type not in (EventType.ADDED, EventType.MODIFIED, EventType.DELETED):
            return
        version = (raw.get("metadata") or {}).get("resourceVersion") if isinstance(raw, dict) else None
        if version:
            self._resource_version = version
        self._emit(EventType(event_type), raw)

    def _emit(self, event_type: EventType, raw: Any) -> None:
        obj = self._store.normalize(self.kind, raw)
        event = WatchEvent(type=event_type, kind=self.kind, obj=obj)
        if self._filter.allow(event):
            self._dispatch(event)
