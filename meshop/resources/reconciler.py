"""Sequential, fail-fast reconciliation of managed mesh resources.

Resources are applied in list order. The first failure aborts the rest and
is returned as a ResourceReconcileError naming that resource; whatever was
applied before it stays in place. The next cycle starts again from the top,
and because every step is a create-or-update the loop converges without any
rollback.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from meshop.errors import ResourceReconcileError
from meshop.models.resources import OperationResult, OwnerReference
from meshop.observability.logging import get_logger
from meshop.observability.metrics import resource_operations_total

if TYPE_CHECKING:
    from meshop.cluster.client import ClusterClient
    from meshop.context import ReconcileContext
    from meshop.resources.base import ManagedResource

_logger = get_logger("resources.reconciler")


class ResourceReconciler:
    """Applies a resource set against the cluster. Holds no state between calls."""

    def __init__(self, client: ClusterClient) -> None:
        self._client = client

    async def reconcile(
        self,
        ctx: ReconcileContext,
        owner: OwnerReference,
        overrides: Mapping[str, Any],
        resources: Sequence[ManagedResource],
    ) -> dict[str, OperationResult]:
        """Apply *resources* in order and return what happened to each.

        Raises:
            ResourceReconcileError: for the first resource that fails.
            ReconcileCancelledError: if cancelled before a resource is applied.
        """
        _logger.info("reconciling istio resources", count=len(resources))
        results: dict[str, OperationResult] = {}
        for resource in resources:
            ctx.checkpoint(f"reconciling {resource.name}")
            try:
                result = await resource.reconcile(self._client, owner, overrides)
            except Exception as exc:
                resource_operations_total.labels(resource=resource.name, result="error").inc()
                _logger.error("istio resource reconcile failed", name=resource.name, error=str(exc))
                raise ResourceReconcileError(resource.name, exc) from exc
            resource_operations_total.labels(resource=resource.name, result=result.value).inc()
            _logger.info("reconciled istio resource", name=resource.name, result=result.value)
            results[resource.name] = result

        _logger.info("successfully reconciled istio resources")
        return results
