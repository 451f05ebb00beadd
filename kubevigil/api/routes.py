"""Status views over the in-memory rule and notifier caches.

Handlers read their dependencies from ``request.app.state``; nothing here
touches the Kubernetes API.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from kubevigil.api.schemas import AlertView, ErrorResponse, NotifierView, RuleView
from kubevigil.errors import NotifierNotFoundError
from kubevigil.models.resources import format_time
from kubevigil.notifications.manager import Notifier
from kubevigil.rules.base import Rule

router = APIRouter()


def _notifier_view(notifier: Notifier) -> NotifierView:
    return NotifierView(
        name=notifier.name,
        channels=[channel.channel_name for channel in notifier.channels],
        notify_interval=notifier.notify_interval,
        checked_at=format_time(notifier.checked_at) if notifier.checked_at else None,
        alerts=[
            AlertView(
                key=key,
                resource_kind=alert.resource_kind,
                resource_name=alert.resource_name,
                status=str(alert.status),
                severity=str(alert.severity),
                message=alert.message,
                suppressed=alert.suppressed,
                error=alert.error,
            )
            for key, alert in sorted(notifier.alerts.items())
        ],
    )


def _rule_view(rule: Rule) -> RuleView:
    return RuleView(
        kind=rule.kind,
        name=rule.name,
        namespace=rule.namespace,
        ready=rule.ready,
        notifiers=list(rule.notification.notifiers),
        checked_at=format_time(rule.status.checked_at) if rule.status.checked_at else None,
        violations={key: format_time(at) for key, at in sorted(rule.status.violations.items())},
    )


@router.get("/notifiers", response_model=list[NotifierView])
async def list_notifiers(request: Request) -> list[NotifierView]:
    cache = request.app.state.notifier_cache
    return [_notifier_view(notifier) for notifier in sorted(cache.all(), key=lambda n: n.name)]


@router.get(
    "/notifiers/{name}",
    response_model=NotifierView,
    responses={404: {"model": ErrorResponse}},
)
async def get_notifier(name: str, request: Request) -> NotifierView | JSONResponse:
    try:
        notifier = request.app.state.notifier_cache.get(name)
    except NotifierNotFoundError as exc:
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(error="NOTIFIER_NOT_FOUND", detail=str(exc)).model_dump(),
        )
    return _notifier_view(notifier)


@router.get("/rules", response_model=list[RuleView])
async def list_rules(request: Request, kind: str | None = None) -> list[RuleView]:
    rules = request.app.state.rule_cache.all_rules()
    if kind:
        rules = [rule for rule in rules if rule.kind == kind]
    rules.sort(key=lambda r: (r.kind, r.namespace, r.name))
    return [_rule_view(rule) for rule in rules]
