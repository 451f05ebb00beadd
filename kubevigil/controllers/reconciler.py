"""Rule and resource reconciliation.

One Reconciler serves one watched kind. Requests reaching it come in two
shapes, told apart by the request name:

* ``RuleKind/ruleName`` -- a rule custom resource changed: reload it, run
  the finalizer protocol, re-evaluate everything it targets;
* ``name``              -- a watched object changed: resolve the rules that
  apply to it and evaluate only that object.
"""

from __future__ import annotations

from datetime import timedelta

from kubevigil.errors import (
    NotFoundError,
    RuleConfigurationError,
    RuleTypeError,
    StoreError,
    ignore_not_found,
)
from kubevigil.models.alerts import Alert
from kubevigil.models.config import ControllerConfig
from kubevigil.models.requests import DONE, ReconcileRequest, ReconcileResult
from kubevigil.models.resources import KubeObject, ObjectKey
from kubevigil.controllers.event_filter import EventFilter
from kubevigil.controllers.queue import jittered_delay
from kubevigil.notifications.manager import NotifierCache
from kubevigil.observability.logging import get_logger
from kubevigil.rules.base import Rule
from kubevigil.rules.cache import RuleCache
from kubevigil.rules.catalog import RuleCatalog, RuleDefinition
from kubevigil.store.base import ObjectStore

RULE_FINALIZER = "rule.finalizers.kubevigil.io"

RULE_DELETED_MESSAGE = "recover alert since rule is being deleted"
RESOURCE_GONE_MESSAGE = "recovered since object is deleted or ignored by rule selector"

_logger = get_logger("controllers.reconciler")


class Reconciler:
    """Reconciles rule and resource requests for one watched kind."""

    def __init__(
        self,
        kind: str,
        store: ObjectStore,
        catalog: RuleCatalog,
        rule_cache: RuleCache,
        notifier_cache: NotifierCache,
        event_filter: EventFilter,
        config: ControllerConfig,
    ) -> None:
        self.kind = kind
        self._store = store
        self._catalog = catalog
        self._rules = rule_cache
        self._notifiers = notifier_cache
        self._filter = event_filter
        self._config = config
        self._log = _logger.bind(kind=kind)

    async def reconcile(self, request: ReconcileRequest) -> ReconcileResult:
        if not self._notifiers.ready:
            self._log.debug("notifier_cache_not_ready", request=str(request))
            return ReconcileResult.after(self._config.notifier_cache_wait_seconds)

        try:
            if request.is_rule_trigger:
                rule_kind, name = request.rule_parts()
                return await self._reconcile_rule(rule_kind, ObjectKey(request.namespace, name))
            return await self._reconcile_resource(ObjectKey(request.namespace, request.name))
        except NotFoundError as exc:
            self._log.info("reconcile_target_gone", request=str(request), error=str(exc))
            return DONE
        except (StoreError, RuleTypeError, RuleConfigurationError) as exc:
            delay = jittered_delay(self._config.retry_min_seconds, self._config.retry_max_seconds)
            self._log.error(
                "reconcile_failed",
                request=str(request),
                error_type=type(exc).__name__,
                error=str(exc),
                retry_in=delay.total_seconds(),
            )
            return ReconcileResult(requeue_after=delay)

    # ------------------------------------------------------------------
    # Rule trigger
    # ------------------------------------------------------------------

    async def _reconcile_rule(self, rule_kind: str, key: ObjectKey) -> ReconcileResult:
        log = self._log.bind(rule=f"{rule_kind}/{key.name}", namespace=key.namespace)
        try:
            rule = await self._catalog.new(self._store, rule_kind, key)
        except NotFoundError:
            removed = self._rules.delete(rule_kind, key)
            self._filter.forget(rule_kind, key)
            if removed is not None:
                self._notifiers.clear_rule_alerts(
                    removed.notification.notifiers, removed.identity, RULE_DELETED_MESSAGE
                )
            log.info("rule_deleted")
            return DONE

        if rule.deletion_timestamp is not None:
            if rule.has_finalizer(RULE_FINALIZER):
                log.info("rule_being_deleted_clearing_alerts")
                self._notifiers.clear_rule_alerts(rule.notification.notifiers, rule.identity, RULE_DELETED_MESSAGE)
                self._rules.delete(rule_kind, key)
                rule.remove_finalizer(RULE_FINALIZER)
                await ignore_not_found(self._store.update(rule_kind, rule.to_object()))
            return DONE

        if not rule.has_finalizer(RULE_FINALIZER):
            log.debug("setting_finalizer", finalizer=RULE_FINALIZER)
            rule.set_finalizer(RULE_FINALIZER)
            stored = await self._store.update(rule_kind, rule.to_object())
            rule.refresh_from(stored)

        rule.ready = False
        self._rules.save(rule)
        async with self._rules.lock(rule):
            alerts = await rule.evaluate_all()
            for alert in alerts:
                self._push(rule, alert)
            await self._persist(rule)
            rule.ready = True
        self._filter.record_generation(rule_kind, key, rule.generation)
        log.info("rule_reconciled", evaluated=len(alerts), violations=sum(a.violated for a in alerts))
        return DONE

    # ------------------------------------------------------------------
    # Resource trigger
    # ------------------------------------------------------------------

    async def _reconcile_resource(self, key: ObjectKey) -> ReconcileResult:
        obj = await ignore_not_found(self._store.get(self.kind, key))
        namespace = key.effective_namespace
        result = DONE

        for definition in self._catalog.for_watched_kind(self.kind):
            if obj is None and definition.resource_kind != self.kind:
                continue
            for rule in self._resolve(definition, namespace):
                if not rule.ready:
                    self._log.info("rule_not_ready_skipping", rule=rule.identity, resource=str(key))
                    result = result.merge(ReconcileResult.after(self._config.rule_not_ready_wait_seconds))
                    continue
                if obj is not None:
                    if not rule.applies_to(obj):
                        continue
                    delay = rule.get_delay(obj)
                    if delay > timedelta(0):
                        self._log.debug(
                            "evaluation_delayed",
                            rule=rule.identity,
                            resource=str(key),
                            delay=delay.total_seconds(),
                        )
                        result = result.merge(ReconcileResult(requeue_after=delay))
                        continue
                async with self._rules.lock(rule):
                    alert = await self._evaluate(rule, obj, key)
                    self._push(rule, alert)
                    await self._persist(rule)

        if obj is None:
            self._filter.forget(self.kind, key)
        else:
            self._filter.mark_checked(self.kind, key)
        return result

    def _resolve(self, definition: RuleDefinition, namespace: str) -> list[Rule]:
        """Namespace rules of *namespace* override the cluster rules entirely."""
        namespaced = self._rules.namespaced_rules(definition, namespace)
        if namespaced:
            return namespaced
        return [r for r in self._rules.cluster_rules(definition) if not r.is_namespace_ignored(namespace)]

    async def _evaluate(self, rule: Rule, obj: KubeObject | None, key: ObjectKey) -> Alert:
        if obj is None or (rule.namespaced and not rule.selector.matches(obj)):
            rule.status.set_violation(key, False)
            target = obj or {"kind": self.kind, "metadata": {"namespace": key.namespace, "name": key.name}}
            return rule.base_alert(target, RESOURCE_GONE_MESSAGE)
        return await rule.evaluate(obj)

    def _push(self, rule: Rule, alert: Alert) -> None:
        if not ObjectKey.parse(alert.resource_name).name:
            return
        self._notifiers.set_alert(rule.notification.notifiers, rule.identity, alert)

    async def _persist(self, rule: Rule) -> None:
        obj = rule.to_object()
        # status writes are unconditional; only this process writes rule status
        obj["metadata"].pop("resourceVersion", None)
        stored = await self._store.update_status(rule.kind, obj)
        rule.refresh_from(stored)
