"""Controllers for kubevigil.

Submodules
----------
queue               -- WorkQueue: per-kind dedup queue, worker pool, retry delays.
event_filter        -- EventFilter: debounce and status-only update suppression.
reconciler          -- Reconciler: rule and resource reconciliation for one kind.
notifier_reconciler -- NotifierReconciler: notifier cache upkeep and delivery.
watcher             -- ResourceWatcher: watch stream with relist and back-off.
manager             -- ControllerManager: wiring and lifecycle.
"""
