"""Two-phase sidecar restart state machine.

The rollout policy lives entirely in ``transition``: a pure function of
(state, phase event) with no I/O, so it can be tested without a cluster.
The orchestrator performs the restarts and feeds their outcomes in here.

    IDLE --START--> RESTARTING_PLATFORM_WORKLOADS
    RESTARTING_PLATFORM_WORKLOADS --SUCCEEDED--> RESTARTING_CUSTOMER_WORKLOADS
    RESTARTING_PLATFORM_WORKLOADS --FAILED-----> PLATFORM_RESTART_FAILED
    RESTARTING_CUSTOMER_WORKLOADS --CHUNK_DONE-> RESTARTING_CUSTOMER_WORKLOADS
    RESTARTING_CUSTOMER_WORKLOADS --SUCCEEDED--> DONE
    RESTARTING_CUSTOMER_WORKLOADS --PARTIAL/FAILED--> CUSTOMER_RESTART_DEGRADED
    any non-terminal --CANCELLED--> CANCELLED
"""

from __future__ import annotations

from enum import StrEnum

from meshop.models.status import RestartStatus


class RestartState(StrEnum):
    """States of one restart run."""

    IDLE = "Idle"
    RESTARTING_PLATFORM_WORKLOADS = "RestartingPlatformWorkloads"
    RESTARTING_CUSTOMER_WORKLOADS = "RestartingCustomerWorkloads"
    DONE = "Done"
    PLATFORM_RESTART_FAILED = "PlatformRestartFailed"
    CUSTOMER_RESTART_DEGRADED = "CustomerRestartDegraded"
    CANCELLED = "Cancelled"


class PhaseEvent(StrEnum):
    """Outcome reported by the orchestrator for the current phase."""

    START = "start"
    CHUNK_DONE = "chunk_done"
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {
        RestartState.DONE,
        RestartState.PLATFORM_RESTART_FAILED,
        RestartState.CUSTOMER_RESTART_DEGRADED,
        RestartState.CANCELLED,
    }
)

_TRANSITIONS: dict[tuple[RestartState, PhaseEvent], RestartState] = {
    (RestartState.IDLE, PhaseEvent.START): RestartState.RESTARTING_PLATFORM_WORKLOADS,
    (RestartState.RESTARTING_PLATFORM_WORKLOADS, PhaseEvent.SUCCEEDED): RestartState.RESTARTING_CUSTOMER_WORKLOADS,
    (RestartState.RESTARTING_PLATFORM_WORKLOADS, PhaseEvent.FAILED): RestartState.PLATFORM_RESTART_FAILED,
    (RestartState.RESTARTING_CUSTOMER_WORKLOADS, PhaseEvent.CHUNK_DONE): RestartState.RESTARTING_CUSTOMER_WORKLOADS,
    (RestartState.RESTARTING_CUSTOMER_WORKLOADS, PhaseEvent.SUCCEEDED): RestartState.DONE,
    (RestartState.RESTARTING_CUSTOMER_WORKLOADS, PhaseEvent.PARTIAL): RestartState.CUSTOMER_RESTART_DEGRADED,
    # Customer enumeration failing leaves the control plane healthy.
    (RestartState.RESTARTING_CUSTOMER_WORKLOADS, PhaseEvent.FAILED): RestartState.CUSTOMER_RESTART_DEGRADED,
}

_OUTCOME_STATUS: dict[RestartState, RestartStatus] = {
    RestartState.DONE: RestartStatus.READY,
    RestartState.PLATFORM_RESTART_FAILED: RestartStatus.ERROR,
    RestartState.CUSTOMER_RESTART_DEGRADED: RestartStatus.WARNING,
    RestartState.CANCELLED: RestartStatus.CANCELLED,
}


class InvalidTransitionError(ValueError):
    """Raised when an event is not valid in the current state."""

    def __init__(self, state: RestartState, event: PhaseEvent) -> None:
        super().__init__(f"Invalid restart transition: {event} in state {state}")
        self.state = state
        self.event = event


def transition(state: RestartState, event: PhaseEvent) -> RestartState:
    """Return the state following *event* in *state*.

    Raises:
        InvalidTransitionError: for terminal states and undefined pairs.
    """
    if event == PhaseEvent.CANCELLED and state not in TERMINAL_STATES:
        return RestartState.CANCELLED
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None


def outcome_status(state: RestartState) -> RestartStatus:
    """Map a terminal state to the run's RestartStatus."""
    if state not in TERMINAL_STATES:
        raise ValueError(f"Restart run has not finished: {state}")
    return _OUTCOME_STATUS[state]
