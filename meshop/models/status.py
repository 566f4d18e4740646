"""CR status and restart outcome data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from meshop.models.workloads import WorkloadRef


class ReconciliationStatus(StrEnum):
    """Coarse state written to ``status.state`` of the Istio CR.

    ERROR means reconciliation or the platform restart failed outright;
    WARNING means the control plane is healthy but some customer workloads
    still run the previous proxy configuration.
    """

    PROCESSING = "Processing"
    READY = "Ready"
    ERROR = "Error"
    WARNING = "Warning"


class RestartStatus(StrEnum):
    """Result of one sidecar restart run."""

    READY = "Ready"
    ERROR = "Error"
    WARNING = "Warning"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class RestartOutcome:
    """Returned by SidecarRestartOrchestrator.run_restart().

    ``failed_workloads`` is only populated for WARNING; ``reason`` is set for
    every non-READY status.
    """

    status: RestartStatus
    reason: str = ""
    failed_workloads: dict[WorkloadRef, str] = field(default_factory=dict)

    @property
    def reconciliation_status(self) -> ReconciliationStatus:
        """CR state this outcome maps to; CANCELLED leaves the CR Processing."""
        return {
            RestartStatus.READY: ReconciliationStatus.READY,
            RestartStatus.ERROR: ReconciliationStatus.ERROR,
            RestartStatus.WARNING: ReconciliationStatus.WARNING,
            RestartStatus.CANCELLED: ReconciliationStatus.PROCESSING,
        }[self.status]
