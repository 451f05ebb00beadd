"""Tests for watch event debouncing and status-only update filtering."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from kubevigil.controllers.event_filter import CHECKED_AT_ANNOTATION, EventFilter, EventType, WatchEvent
from kubevigil.models.resources import ObjectKey, format_time

_KEY = ObjectKey("default", "db")


def _event(kind: str, event_type: EventType = EventType.MODIFIED, **metadata: object) -> WatchEvent:
    meta: dict[str, object] = {"namespace": "default", "name": "db", **metadata}
    return WatchEvent(type=event_type, kind=kind, obj={"metadata": meta})


def _filter() -> EventFilter:
    return EventFilter(timedelta(seconds=10), custom_kinds={"ClusterRuleSecretUnused", "Notifier"})


# ---------------------------------------------------------------------------
# Resource kinds
# ---------------------------------------------------------------------------


class TestResourceDebounce:
    def test_unchecked_object_passes(self) -> None:
        assert _filter().allow(_event("Secret"))

    def test_recent_marker_drops_update_and_generic(self) -> None:
        event_filter = _filter()
        event_filter.mark_checked("Secret", _KEY)
        assert not event_filter.allow(_event("Secret"))
        assert not event_filter.allow(_event("Secret", EventType.GENERIC))

    def test_stale_marker_passes(self) -> None:
        event_filter = _filter()
        event_filter.mark_checked("Secret", _KEY, at=datetime.now(tz=UTC) - timedelta(seconds=30))
        assert event_filter.allow(_event("Secret"))

    def test_marker_is_per_kind(self) -> None:
        event_filter = _filter()
        event_filter.mark_checked("ConfigMap", _KEY)
        assert event_filter.allow(_event("Secret"))

    def test_recent_annotation_drops_update(self) -> None:
        annotated = _event("Secret", annotations={CHECKED_AT_ANNOTATION: format_time(datetime.now(tz=UTC))})
        assert not _filter().allow(annotated)

    def test_create_and_delete_always_pass(self) -> None:
        event_filter = _filter()
        event_filter.mark_checked("Secret", _KEY)
        assert event_filter.allow(_event("Secret", EventType.ADDED))
        assert event_filter.allow(_event("Secret", EventType.DELETED))

    def test_forget_clears_marker(self) -> None:
        event_filter = _filter()
        event_filter.mark_checked("Secret", _KEY)
        event_filter.forget("Secret", _KEY)
        assert event_filter.allow(_event("Secret"))


# ---------------------------------------------------------------------------
# Custom kinds
# ---------------------------------------------------------------------------


class TestGenerationFilter:
    def test_same_generation_is_dropped(self) -> None:
        event_filter = _filter()
        event_filter.record_generation("Notifier", _KEY, 3)
        assert not event_filter.allow(_event("Notifier", generation=3))

    def test_new_generation_passes(self) -> None:
        event_filter = _filter()
        event_filter.record_generation("Notifier", _KEY, 3)
        assert event_filter.allow(_event("Notifier", generation=4))

    def test_unknown_generation_passes(self) -> None:
        assert _filter().allow(_event("ClusterRuleSecretUnused", generation=1))

    def test_deleting_object_passes(self) -> None:
        event_filter = _filter()
        event_filter.record_generation("Notifier", _KEY, 3)
        deleting = _event("Notifier", generation=3, deletionTimestamp="2026-01-01T00:00:00Z")
        assert event_filter.allow(deleting)

    def test_custom_kinds_ignore_check_markers(self) -> None:
        event_filter = _filter()
        event_filter.mark_checked("Notifier", _KEY)
        assert event_filter.allow(_event("Notifier", EventType.GENERIC))
