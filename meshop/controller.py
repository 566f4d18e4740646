"""Per-CR reconcile entry point.

One call of ``IstioController.reconcile`` is one reconcile cycle:

    status Processing
    -> discover ClusterProfile (fresh, never cached)
    -> query the NLB signal if the provider's resource set needs it
    -> merge base template + flavor + provider overrides
    -> reconcile managed resources (fail fast)
    -> restart stale sidecars (platform, then chunked customer workloads)
    -> status Ready | Error | Warning

Errors are returned, never raised: the CR status is the only failure
channel. A cancelled cycle returns ReconcileCancelledError and leaves the CR
in Processing. Concurrent calls for the same CR must be prevented by the
caller.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from meshop.clusterconfig.discovery import ClusterTopologyDiscoverer
from meshop.clusterconfig.overrides import (
    expected_proxy_image,
    flavor_overrides,
    load_base_template,
    merge_documents,
    parse_template,
    provider_overrides,
)
from meshop.errors import (
    CustomerRestartPartialFailure,
    DescribedError,
    PlatformRestartError,
    ReconcileCancelledError,
)
from meshop.models.config import MeshopConfig
from meshop.models.resources import OwnerReference
from meshop.models.status import ReconciliationStatus, RestartStatus
from meshop.observability.logging import bind_cr_context, clear_cr_context, get_logger
from meshop.observability.metrics import reconcile_duration_seconds, reconciliations_total
from meshop.resources.builder import build_resource_set, needs_nlb_signal
from meshop.resources.reconciler import ResourceReconciler
from meshop.restart.orchestrator import SidecarRestartOrchestrator

if TYPE_CHECKING:
    from meshop.cluster.client import ClusterClient
    from meshop.context import ReconcileContext

_logger = get_logger("controller")

READY_DESCRIPTION = "Istio resources reconciled and sidecars up to date"


class IstioController:
    """Reconciles one Istio CR against the cluster.

    Args:
        client: Cluster access shared by all components.
        config: Operator configuration; defaults apply when omitted.
    """

    def __init__(self, client: ClusterClient, config: MeshopConfig | None = None) -> None:
        self._client = client
        self._config = config or MeshopConfig()
        self._discoverer = ClusterTopologyDiscoverer(client, self._config.discovery)
        self._resources = ResourceReconciler(client)
        self._restarts = SidecarRestartOrchestrator(client, self._config.restart)

    async def reconcile(self, ctx: ReconcileContext, cr: dict[str, Any]) -> DescribedError | None:
        """Run one reconcile cycle for *cr* and write the resulting status."""
        metadata = cr.get("metadata", {})
        bind_cr_context(metadata.get("namespace", ""), metadata.get("name", ""))
        started = time.monotonic()
        try:
            status_error = await self._write_status(cr, ReconciliationStatus.PROCESSING, "Reconciling Istio")
            if status_error is not None:
                return status_error
            state, description, error = await self._run_cycle(ctx, cr)
            if isinstance(error, ReconcileCancelledError):
                reconciliations_total.labels(result="Cancelled").inc()
                _logger.info("reconcile cancelled", reason=error.message)
                return error
            reconciliations_total.labels(result=state.value).inc()
            status_error = await self._write_status(cr, state, description)
            return error or status_error
        finally:
            reconcile_duration_seconds.observe(time.monotonic() - started)
            clear_cr_context()

    async def _run_cycle(
        self,
        ctx: ReconcileContext,
        cr: dict[str, Any],
    ) -> tuple[ReconciliationStatus, str, DescribedError | None]:
        try:
            profile = await self._discoverer.evaluate_cluster_profile(ctx)

            use_nlb = False
            if needs_nlb_signal(profile.provider):
                ctx.checkpoint("querying NLB mode")
                try:
                    use_nlb = await self._client.should_use_nlb()
                except Exception as exc:
                    raise DescribedError("Could not determine load balancer mode", exc) from exc

            template = parse_template(load_base_template(self._config.reconcile.template_path or None))
            document = merge_documents(
                template,
                flavor_overrides(profile.flavor),
                provider_overrides(profile.provider, use_nlb),
            )
            resources = build_resource_set(profile.provider, use_nlb)
            owner = OwnerReference.from_custom_resource(cr)
            await self._resources.reconcile(ctx, owner, document, resources)
            outcome = await self._restarts.run_restart(ctx, expected_proxy_image(document))
        except DescribedError as exc:
            return exc.level, exc.message, exc
        except Exception as exc:
            _logger.exception("reconcile cycle failed unexpectedly", error=str(exc))
            unexpected = DescribedError("Reconciliation failed unexpectedly", exc)
            return ReconciliationStatus.ERROR, unexpected.message, unexpected

        if outcome.status == RestartStatus.READY:
            return ReconciliationStatus.READY, READY_DESCRIPTION, None
        if outcome.status == RestartStatus.CANCELLED:
            return ReconciliationStatus.PROCESSING, outcome.reason, ReconcileCancelledError("restarting sidecars")
        if outcome.status == RestartStatus.WARNING:
            partial = CustomerRestartPartialFailure(outcome.failed_workloads)
            description = partial.message if outcome.failed_workloads else outcome.reason
            return ReconciliationStatus.WARNING, description, partial
        platform = PlatformRestartError(outcome.reason)
        return ReconciliationStatus.ERROR, platform.message, platform

    async def _write_status(
        self,
        cr: dict[str, Any],
        state: ReconciliationStatus,
        description: str,
    ) -> DescribedError | None:
        try:
            await self._client.update_status(cr, state, description)
        except Exception as exc:
            _logger.error("status update failed", state=state.value, error=str(exc))
            return DescribedError(f"Could not update Istio CR status to {state.value}", exc)
        _logger.info("status updated", state=state.value, description=description)
        return None
