"""meshop: Istio mesh reconciliation and sidecar-restart engine."""

__version__ = "0.1.0"
