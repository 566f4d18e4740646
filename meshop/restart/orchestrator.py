"""Sidecar restart orchestration.

Rolls a changed proxy configuration out to running workloads in two phases:

1. Platform workloads (the operator's own namespaces). Any enumeration or
   restart failure ends the run with ERROR; customer workloads are never
   touched, since a broken platform may mean a broken control plane.
2. Customer workloads, in fixed-size chunks processed strictly one after
   another. A failing workload is recorded and skipped; the run ends READY
   when nothing failed and WARNING with the failed identifiers otherwise.

Only workloads whose sidecar image differs from the expected proxy image are
restarted, so an interrupted run is resumed naturally by the next cycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from meshop.errors import PlatformRestartError, ReconcileCancelledError
from meshop.models.config import RestartConfig
from meshop.models.status import RestartOutcome, RestartStatus
from meshop.models.workloads import RestartPhase, RestartPlan, WorkloadRef, WorkloadSelector
from meshop.observability.logging import get_logger
from meshop.observability.metrics import restart_runs_total, sidecar_restarts_total
from meshop.restart.state import PhaseEvent, RestartState, outcome_status, transition

if TYPE_CHECKING:
    from meshop.cluster.client import ClusterClient
    from meshop.context import ReconcileContext

_logger = get_logger("restart.orchestrator")


class _CustomerEnumerationError(Exception):
    """Listing customer workloads failed before any restart was issued."""


class SidecarRestartOrchestrator:
    """Drives one restart run per call; keeps no state between runs.

    Args:
        client: Cluster access used to list and restart workloads.
        config: Chunk size and the namespaces counted as platform.
    """

    def __init__(self, client: ClusterClient, config: RestartConfig | None = None) -> None:
        self._client = client
        self._config = config or RestartConfig()
        self._platform_namespaces = frozenset(self._config.platform_namespaces)

    async def run_restart(self, ctx: ReconcileContext, expected_proxy_image: str = "") -> RestartOutcome:
        """Run both phases and translate the terminal state into an outcome."""
        state = self._advance(RestartState.IDLE, PhaseEvent.START)

        try:
            await self._restart_platform_workloads(ctx, expected_proxy_image)
        except PlatformRestartError as exc:
            state = self._advance(state, PhaseEvent.FAILED)
            return self._finish(state, reason=exc.message)
        except ReconcileCancelledError as exc:
            state = self._advance(state, PhaseEvent.CANCELLED)
            return self._finish(state, reason=exc.message)
        state = self._advance(state, PhaseEvent.SUCCEEDED)

        plan = RestartPlan(phase=RestartPhase.CUSTOMER_WORKLOADS, chunk_size=self._config.chunk_size)
        try:
            state = await self._restart_customer_workloads(ctx, expected_proxy_image, plan, state)
        except _CustomerEnumerationError as exc:
            state = self._advance(state, PhaseEvent.FAILED)
            return self._finish(state, reason=f"Could not list customer workloads: {exc}")
        except ReconcileCancelledError as exc:
            state = self._advance(state, PhaseEvent.CANCELLED)
            return self._finish(state, reason=exc.message, failed=plan.failures)

        if plan.failures:
            state = self._advance(state, PhaseEvent.PARTIAL)
            return self._finish(
                state,
                reason=f"Sidecar restart failed for {len(plan.failures)} of {len(plan.targets)} customer workloads",
                failed=plan.failures,
            )
        state = self._advance(state, PhaseEvent.SUCCEEDED)
        return self._finish(state)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _restart_platform_workloads(self, ctx: ReconcileContext, expected_proxy_image: str) -> RestartPlan:
        selector = WorkloadSelector(
            expected_proxy_image=expected_proxy_image,
            namespaces=self._platform_namespaces,
        )
        ctx.checkpoint("listing platform workloads")
        try:
            targets = await self._client.list_workloads(selector, ctx)
        except ReconcileCancelledError:
            raise
        except Exception as exc:
            raise PlatformRestartError("Could not list platform workloads", exc) from exc

        plan = RestartPlan(phase=RestartPhase.KYMA_WORKLOADS, chunk_size=max(len(targets), 1), targets=targets)
        _logger.info("restarting platform workloads", count=len(targets))
        for ref in targets:
            ctx.checkpoint(f"restarting {ref}")
            try:
                await self._client.restart_workload(ref)
            except Exception as exc:
                sidecar_restarts_total.labels(phase=plan.phase.value, success="false").inc()
                _logger.error("platform workload restart failed", workload=str(ref), error=str(exc))
                raise PlatformRestartError(f"Could not restart platform workload {ref}", exc) from exc
            sidecar_restarts_total.labels(phase=plan.phase.value, success="true").inc()
            plan.record_success(ref)
        return plan

    async def _restart_customer_workloads(
        self,
        ctx: ReconcileContext,
        expected_proxy_image: str,
        plan: RestartPlan,
        state: RestartState,
    ) -> RestartState:
        selector = WorkloadSelector(
            expected_proxy_image=expected_proxy_image,
            exclude_namespaces=self._platform_namespaces,
        )
        ctx.checkpoint("listing customer workloads")
        try:
            plan.targets = await self._client.list_workloads(selector, ctx)
        except ReconcileCancelledError:
            raise
        except Exception as exc:
            _logger.error("customer workload listing failed", error=str(exc))
            raise _CustomerEnumerationError(str(exc)) from exc

        chunks = plan.chunks()
        _logger.info("restarting customer workloads", count=len(plan.targets), chunks=len(chunks))
        for index, chunk in enumerate(chunks):
            plan.chunk_index = index
            for ref in chunk:
                ctx.checkpoint(f"restarting {ref}")
                await self._restart_customer_workload(ref, plan)
            _logger.info(
                "customer chunk processed",
                chunk=index + 1,
                of=len(chunks),
                failures=len(plan.failures),
            )
            state = self._advance(state, PhaseEvent.CHUNK_DONE)
        return state

    async def _restart_customer_workload(self, ref: WorkloadRef, plan: RestartPlan) -> None:
        try:
            await self._client.restart_workload(ref)
        except Exception as exc:
            sidecar_restarts_total.labels(phase=plan.phase.value, success="false").inc()
            _logger.warning("customer workload restart failed", workload=str(ref), error=str(exc))
            plan.record_failure(ref, str(exc))
            return
        sidecar_restarts_total.labels(phase=plan.phase.value, success="true").inc()
        plan.record_success(ref)

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def _advance(state: RestartState, event: PhaseEvent) -> RestartState:
        next_state = transition(state, event)
        if next_state != state:
            _logger.debug("restart state changed", old=state.value, new=next_state.value, trigger=event.value)
        return next_state

    @staticmethod
    def _finish(
        state: RestartState,
        reason: str = "",
        failed: dict[WorkloadRef, str] | None = None,
    ) -> RestartOutcome:
        status = outcome_status(state)
        restart_runs_total.labels(status=status.value).inc()
        outcome = RestartOutcome(
            status=status,
            reason=reason,
            failed_workloads=dict(failed or {}) if status != RestartStatus.READY else {},
        )
        log = _logger.info if status == RestartStatus.READY else _logger.warning
        log(
            "sidecar restart finished",
            state=state.value,
            status=status.value,
            reason=reason,
            failed=[str(ref) for ref in sorted(outcome.failed_workloads)],
        )
        return outcome
