"""Watch event filtering.

Two things are dropped before they reach a queue:

* resource events arriving within ``min_check_interval`` of the last check
  of that object (in-process marker, or the checked-at annotation);
* custom resource MODIFIED events whose ``metadata.generation`` equals the
  generation last reconciled, i.e. status-only writes (our own included),
  unless the object is being deleted.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum

from kubevigil.models.resources import (
    KubeObject,
    ObjectKey,
    deletion_timestamp,
    object_annotations,
    parse_time,
)
from kubevigil.observability.logging import get_logger

CHECKED_AT_ANNOTATION = "kubevigil.io/checked-at"

_logger = get_logger("controllers.event_filter")


class EventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    GENERIC = "GENERIC"


@dataclass(frozen=True)
class WatchEvent:
    type: EventType
    kind: str
    obj: KubeObject

    @property
    def key(self) -> ObjectKey:
        return ObjectKey.of(self.obj)


class EventFilter:
    """Create/update/delete/generic predicates shared by every watcher."""

    def __init__(self, min_check_interval: timedelta, custom_kinds: set[str] | frozenset[str] = frozenset()) -> None:
        self._interval = min_check_interval
        self._custom_kinds = frozenset(custom_kinds)
        self._lock = threading.Lock()
        self._checked: dict[tuple[str, ObjectKey], datetime] = {}
        self._generations: dict[tuple[str, ObjectKey], int] = {}

    # ------------------------------------------------------------------
    # Markers written by reconcilers
    # ------------------------------------------------------------------

    def mark_checked(self, kind: str, key: ObjectKey, at: datetime | None = None) -> None:
        with self._lock:
            self._checked[(kind, key)] = at or datetime.now(tz=UTC)

    def record_generation(self, kind: str, key: ObjectKey, generation: int) -> None:
        with self._lock:
            self._generations[(kind, key)] = generation

    def forget(self, kind: str, key: ObjectKey) -> None:
        with self._lock:
            self._checked.pop((kind, key), None)
            self._generations.pop((kind, key), None)

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def allow(self, event: WatchEvent) -> bool:
        if event.type == EventType.ADDED:
            return self.create(event)
        if event.type == EventType.MODIFIED:
            return self.update(event)
        if event.type == EventType.DELETED:
            return self.delete(event)
        return self.generic(event)

    def create(self, event: WatchEvent) -> bool:
        return True

    def delete(self, event: WatchEvent) -> bool:
        return True

    def update(self, event: WatchEvent) -> bool:
        if event.kind in self._custom_kinds:
            return self._generation_changed(event)
        return not self._recently_checked(event)

    def generic(self, event: WatchEvent) -> bool:
        if event.kind in self._custom_kinds:
            return True
        return not self._recently_checked(event)

    def _generation_changed(self, event: WatchEvent) -> bool:
        if deletion_timestamp(event.obj) is not None:
            return True
        generation = int((event.obj.get("metadata") or {}).get("generation") or 0)
        with self._lock:
            last = self._generations.get((event.kind, event.key))
        if last is not None and last == generation:
            _logger.debug("status_only_update_dropped", kind=event.kind, key=str(event.key), generation=generation)
            return False
        return True

    def _recently_checked(self, event: WatchEvent) -> bool:
        with self._lock:
            last = self._checked.get((event.kind, event.key))
        annotated = parse_time(object_annotations(event.obj).get(CHECKED_AT_ANNOTATION))
        if annotated is not None and (last is None or annotated > last):
            last = annotated
        if last is None:
            return False
        recent = datetime.now(tz=UTC) - last < self._interval
        if recent:
            _logger.debug("event_debounced", kind=event.kind, key=str(event.key))
        return recent
