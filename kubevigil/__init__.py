"""kubevigil: policy-violation watcher for Kubernetes workloads."""

__version__ = "0.3.0"
