"""Error taxonomy for the reconcile and restart pipeline.

Every error here is data, not a crash: the controller turns them into the
``status.state``/``status.description`` of the owning Istio CR.

DescribedError                -- base; carries a human description, the cause
                                 and the CR state it maps to.
DiscoveryError                -- node inventory could not be read.
MergeError                    -- override template malformed or type conflict.
ResourceReconcileError        -- a managed mesh resource failed to apply.
PlatformRestartError          -- phase-1 (platform workloads) restart failed.
CustomerRestartPartialFailure -- some phase-2 (customer) workloads failed.
ReconcileCancelledError       -- the run was cancelled at an API boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from meshop.models.status import ReconciliationStatus

if TYPE_CHECKING:
    from meshop.models.workloads import WorkloadRef


class DescribedError(Exception):
    """An error with a user-facing description and an underlying cause."""

    level: ReconciliationStatus = ReconciliationStatus.ERROR

    def __init__(self, description: str, cause: BaseException | None = None) -> None:
        message = f"{description}: {cause}" if cause is not None else description
        super().__init__(message)
        self.description = description
        self.cause = cause

    @property
    def message(self) -> str:
        return str(self)


class DiscoveryError(DescribedError):
    """Raised when the node listing call fails (transport or permission)."""


class MergeError(DescribedError):
    """Raised when a template cannot be parsed or a merge hits a type conflict."""


class ResourceReconcileError(DescribedError):
    """Raised when a single managed resource fails to reconcile."""

    def __init__(self, resource_name: str, cause: BaseException) -> None:
        super().__init__(f"Could not reconcile Istio resource {resource_name}", cause)
        self.resource_name = resource_name


class PlatformRestartError(DescribedError):
    """Phase-1 restart failure; the mesh control plane may be unhealthy."""


class CustomerRestartPartialFailure(DescribedError):
    """Phase-2 restart left some customer workloads on the old proxy config."""

    level = ReconciliationStatus.WARNING

    def __init__(self, failed: dict[WorkloadRef, str]) -> None:
        names = ", ".join(str(ref) for ref in sorted(failed))
        super().__init__(f"Sidecar restart failed for {len(failed)} workload(s): {names}")
        self.failed = dict(failed)


class ReconcileCancelledError(DescribedError):
    """The run observed the cancellation signal before an API call."""

    level = ReconciliationStatus.PROCESSING

    def __init__(self, where: str = "") -> None:
        super().__init__(f"Reconciliation cancelled{f' before {where}' if where else ''}")
        self.where = where
