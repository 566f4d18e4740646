"""Sidecar restart orchestration.

Submodules:
    state        -- RestartState enum and the pure transition function.
    orchestrator -- SidecarRestartOrchestrator: platform then chunked customer restarts.
"""

from meshop.restart.orchestrator import SidecarRestartOrchestrator
from meshop.restart.state import InvalidTransitionError, PhaseEvent, RestartState, transition

__all__ = [
    "InvalidTransitionError",
    "PhaseEvent",
    "RestartState",
    "SidecarRestartOrchestrator",
    "transition",
]
