"""Tests for the restart state machine, RestartPlan chunking and the orchestrator."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from meshop.context import ReconcileContext
from meshop.errors import ReconcileCancelledError
from meshop.models.config import RestartConfig
from meshop.models.status import ReconciliationStatus, RestartStatus
from meshop.models.workloads import RestartPhase, RestartPlan, WorkloadKind, WorkloadRef, WorkloadSelector
from meshop.restart.orchestrator import SidecarRestartOrchestrator
from meshop.restart.state import (
    TERMINAL_STATES,
    InvalidTransitionError,
    PhaseEvent,
    RestartState,
    outcome_status,
    transition,
)

_IMAGE = "registry.io/istio/proxyv2:1.20.3"


def _refs(namespace: str, count: int) -> list[WorkloadRef]:
    return [WorkloadRef(namespace, WorkloadKind.DEPLOYMENT, f"app-{i:02d}") for i in range(count)]


def _make_client(
    platform: list[WorkloadRef] | Exception,
    customer: list[WorkloadRef] | Exception,
    failing: set[WorkloadRef] | None = None,
) -> MagicMock:
    failing = failing or set()

    async def list_workloads(selector: WorkloadSelector, ctx: ReconcileContext | None = None) -> list[WorkloadRef]:
        result = platform if selector.namespaces else customer
        if isinstance(result, Exception):
            raise result
        return list(result)

    async def restart_workload(ref: WorkloadRef) -> None:
        if ref in failing:
            raise RuntimeError(f"patch rejected for {ref.name}")

    client = MagicMock()
    client.list_workloads = AsyncMock(side_effect=list_workloads)
    client.restart_workload = AsyncMock(side_effect=restart_workload)
    return client


def _restarted(client: MagicMock) -> list[WorkloadRef]:
    return [call.args[0] for call in client.restart_workload.await_args_list]


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestTransition:
    def test_happy_path(self) -> None:
        state = transition(RestartState.IDLE, PhaseEvent.START)
        assert state == RestartState.RESTARTING_PLATFORM_WORKLOADS
        state = transition(state, PhaseEvent.SUCCEEDED)
        assert state == RestartState.RESTARTING_CUSTOMER_WORKLOADS
        state = transition(state, PhaseEvent.CHUNK_DONE)
        assert state == RestartState.RESTARTING_CUSTOMER_WORKLOADS
        assert transition(state, PhaseEvent.SUCCEEDED) == RestartState.DONE

    def test_platform_failure_is_terminal(self) -> None:
        state = transition(RestartState.RESTARTING_PLATFORM_WORKLOADS, PhaseEvent.FAILED)
        assert state == RestartState.PLATFORM_RESTART_FAILED
        assert state in TERMINAL_STATES

    @pytest.mark.parametrize("event", [PhaseEvent.PARTIAL, PhaseEvent.FAILED])
    def test_customer_problems_degrade(self, event: PhaseEvent) -> None:
        assert transition(RestartState.RESTARTING_CUSTOMER_WORKLOADS, event) == RestartState.CUSTOMER_RESTART_DEGRADED

    @pytest.mark.parametrize(
        "state",
        [RestartState.IDLE, RestartState.RESTARTING_PLATFORM_WORKLOADS, RestartState.RESTARTING_CUSTOMER_WORKLOADS],
    )
    def test_cancel_from_any_running_state(self, state: RestartState) -> None:
        assert transition(state, PhaseEvent.CANCELLED) == RestartState.CANCELLED

    @pytest.mark.parametrize("state", sorted(TERMINAL_STATES))
    def test_terminal_states_accept_nothing(self, state: RestartState) -> None:
        for event in PhaseEvent:
            with pytest.raises(InvalidTransitionError):
                transition(state, event)

    def test_customer_phase_cannot_be_skipped(self) -> None:
        with pytest.raises(InvalidTransitionError, match="chunk_done"):
            transition(RestartState.RESTARTING_PLATFORM_WORKLOADS, PhaseEvent.CHUNK_DONE)

    def test_partial_not_valid_for_platform(self) -> None:
        with pytest.raises(InvalidTransitionError):
            transition(RestartState.RESTARTING_PLATFORM_WORKLOADS, PhaseEvent.PARTIAL)


class TestOutcomeStatus:
    @pytest.mark.parametrize(
        "state,status",
        [
            (RestartState.DONE, RestartStatus.READY),
            (RestartState.PLATFORM_RESTART_FAILED, RestartStatus.ERROR),
            (RestartState.CUSTOMER_RESTART_DEGRADED, RestartStatus.WARNING),
            (RestartState.CANCELLED, RestartStatus.CANCELLED),
        ],
    )
    def test_terminal_mapping(self, state: RestartState, status: RestartStatus) -> None:
        assert outcome_status(state) == status

    def test_running_state_has_no_outcome(self) -> None:
        with pytest.raises(ValueError, match="has not finished"):
            outcome_status(RestartState.RESTARTING_CUSTOMER_WORKLOADS)


# ---------------------------------------------------------------------------
# RestartPlan
# ---------------------------------------------------------------------------


class TestRestartPlan:
    def test_chunks_are_consecutive_and_bounded(self) -> None:
        plan = RestartPlan(RestartPhase.CUSTOMER_WORKLOADS, chunk_size=10, targets=_refs("shop", 23))
        chunks = plan.chunks()
        assert [len(c) for c in chunks] == [10, 10, 3]
        assert [ref for chunk in chunks for ref in chunk] == plan.targets
        assert plan.chunk_count == 3

    def test_no_targets_no_chunks(self) -> None:
        assert RestartPlan(RestartPhase.CUSTOMER_WORKLOADS, chunk_size=5).chunks() == []

    def test_chunk_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="chunk_size"):
            RestartPlan(RestartPhase.CUSTOMER_WORKLOADS, chunk_size=0)


# ---------------------------------------------------------------------------
# SidecarRestartOrchestrator
# ---------------------------------------------------------------------------


class TestOrchestrator:
    async def test_all_restarted_is_ready(self) -> None:
        platform, customer = _refs("kyma-system", 2), _refs("shop", 5)
        client = _make_client(platform, customer)

        outcome = await SidecarRestartOrchestrator(client).run_restart(ReconcileContext(), _IMAGE)

        assert outcome.status == RestartStatus.READY
        assert outcome.failed_workloads == {}
        assert _restarted(client) == platform + customer

    async def test_platform_phase_precedes_customer_phase(self) -> None:
        client = _make_client(_refs("istio-system", 1), _refs("shop", 1))

        await SidecarRestartOrchestrator(client).run_restart(ReconcileContext(), _IMAGE)

        selectors = [call.args[0] for call in client.list_workloads.await_args_list]
        assert selectors[0].namespaces == frozenset({"kyma-system", "istio-system"})
        assert selectors[1].exclude_namespaces == frozenset({"kyma-system", "istio-system"})
        assert all(s.expected_proxy_image == _IMAGE for s in selectors)

    async def test_two_of_fifty_customer_failures_is_warning(self) -> None:
        customer = _refs("shop", 50)
        failing = {customer[7], customer[41]}
        client = _make_client([], customer, failing)

        outcome = await SidecarRestartOrchestrator(client, RestartConfig(chunk_size=10)).run_restart(
            ReconcileContext(), _IMAGE
        )

        assert outcome.status == RestartStatus.WARNING
        assert outcome.reconciliation_status == ReconciliationStatus.WARNING
        assert set(outcome.failed_workloads) == failing
        assert "patch rejected" in outcome.failed_workloads[customer[7]]
        assert "2 of 50" in outcome.reason
        assert client.restart_workload.await_count == 50

    async def test_platform_failure_stops_before_customer_phase(self) -> None:
        platform = _refs("kyma-system", 3)
        client = _make_client(platform, _refs("shop", 5), failing={platform[1]})

        outcome = await SidecarRestartOrchestrator(client).run_restart(ReconcileContext(), _IMAGE)

        assert outcome.status == RestartStatus.ERROR
        assert outcome.reconciliation_status == ReconciliationStatus.ERROR
        assert "kyma-system" in outcome.reason
        assert _restarted(client) == platform[:2]
        assert client.list_workloads.await_count == 1

    async def test_platform_enumeration_failure_is_error(self) -> None:
        client = _make_client(ConnectionError("api unavailable"), _refs("shop", 1))

        outcome = await SidecarRestartOrchestrator(client).run_restart(ReconcileContext(), _IMAGE)

        assert outcome.status == RestartStatus.ERROR
        assert "Could not list platform workloads" in outcome.reason
        client.restart_workload.assert_not_awaited()

    async def test_customer_enumeration_failure_is_warning(self) -> None:
        client = _make_client(_refs("kyma-system", 1), ConnectionError("api unavailable"))

        outcome = await SidecarRestartOrchestrator(client).run_restart(ReconcileContext(), _IMAGE)

        assert outcome.status == RestartStatus.WARNING
        assert outcome.failed_workloads == {}
        assert "Could not list customer workloads" in outcome.reason

    async def test_nothing_stale_is_ready(self) -> None:
        client = _make_client([], [])

        outcome = await SidecarRestartOrchestrator(client).run_restart(ReconcileContext(), _IMAGE)

        assert outcome.status == RestartStatus.READY
        client.restart_workload.assert_not_awaited()

    async def test_cancelled_between_chunks(self) -> None:
        ctx = ReconcileContext()
        customer = _refs("shop", 30)
        client = _make_client([], customer)
        restart = client.restart_workload.side_effect

        async def cancel_after_twelve(ref: WorkloadRef) -> None:
            await restart(ref)
            if client.restart_workload.await_count == 12:
                ctx.cancel()

        client.restart_workload.side_effect = cancel_after_twelve

        outcome = await SidecarRestartOrchestrator(client, RestartConfig(chunk_size=10)).run_restart(ctx, _IMAGE)

        assert outcome.status == RestartStatus.CANCELLED
        assert outcome.reconciliation_status == ReconciliationStatus.PROCESSING
        assert _restarted(client) == customer[:12]

    async def test_cancelled_before_start(self) -> None:
        ctx = ReconcileContext()
        ctx.cancel()
        client = _make_client(_refs("kyma-system", 1), _refs("shop", 1))

        outcome = await SidecarRestartOrchestrator(client).run_restart(ctx, _IMAGE)

        assert outcome.status == RestartStatus.CANCELLED
        client.list_workloads.assert_not_awaited()

    async def test_context_reaches_workload_listing(self) -> None:
        ctx = ReconcileContext()
        client = _make_client(_refs("kyma-system", 1), _refs("shop", 1))

        await SidecarRestartOrchestrator(client).run_restart(ctx, _IMAGE)

        assert all(call.args[1] is ctx for call in client.list_workloads.await_args_list)

    @pytest.mark.parametrize("failing_phase", ["platform", "customer"])
    async def test_cancelled_while_listing(self, failing_phase: str) -> None:
        ctx = ReconcileContext()
        cancelled = ReconcileCancelledError("reading ReplicaSet shop/web-7d9")
        platform = cancelled if failing_phase == "platform" else _refs("kyma-system", 1)
        customer = cancelled if failing_phase == "customer" else _refs("shop", 1)
        client = _make_client(platform, customer)

        outcome = await SidecarRestartOrchestrator(client).run_restart(ctx, _IMAGE)

        assert outcome.status == RestartStatus.CANCELLED
        assert outcome.reconciliation_status == ReconciliationStatus.PROCESSING
        assert outcome.failed_workloads == {}

    @pytest.mark.parametrize(
        "state,event,expected",
        [
            (RestartState.IDLE, PhaseEvent.START, RestartState.RESTARTING_PLATFORM_WORKLOADS),
            (
                RestartState.RESTARTING_CUSTOMER_WORKLOADS,
                PhaseEvent.CHUNK_DONE,
                RestartState.RESTARTING_CUSTOMER_WORKLOADS,
            ),
            (RestartState.RESTARTING_CUSTOMER_WORKLOADS, PhaseEvent.SUCCEEDED, RestartState.DONE),
        ],
    )
    def test_advance_logs_and_returns_next_state(
        self, state: RestartState, event: PhaseEvent, expected: RestartState
    ) -> None:
        assert SidecarRestartOrchestrator._advance(state, event) == expected
