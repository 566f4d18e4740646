"""Workload identifiers and restart plan data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class WorkloadKind(StrEnum):
    """Kinds the restart orchestrator knows how to roll."""

    DEPLOYMENT = "Deployment"
    STATEFUL_SET = "StatefulSet"
    DAEMON_SET = "DaemonSet"
    POD = "Pod"  # pod of a bare ReplicaSet; restarted by eviction


class RestartPhase(StrEnum):
    """The two phases of a sidecar restart run."""

    KYMA_WORKLOADS = "KymaWorkloads"
    CUSTOMER_WORKLOADS = "CustomerWorkloads"


@dataclass(frozen=True, order=True)
class WorkloadRef:
    """Identifies one restartable workload. Ordered by namespace, kind, name."""

    namespace: str
    kind: WorkloadKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


@dataclass(frozen=True)
class WorkloadSelector:
    """Which sidecar-injected workloads list_workloads() should return.

    ``namespaces`` restricts the listing to those namespaces when non-empty;
    ``exclude_namespaces`` removes namespaces from it. Only workloads whose
    sidecar image differs from ``expected_proxy_image`` are returned; an
    empty ``expected_proxy_image`` returns every sidecar-injected workload.
    """

    expected_proxy_image: str = ""
    namespaces: frozenset[str] = frozenset()
    exclude_namespaces: frozenset[str] = frozenset()

    def admits_namespace(self, namespace: str) -> bool:
        if self.namespaces and namespace not in self.namespaces:
            return False
        return namespace not in self.exclude_namespaces


@dataclass
class RestartPlan:
    """Working state of one restart phase.

    Created fresh for every run and never persisted: after a crash the
    affected workloads still carry the old proxy image and are picked up
    by the next reconcile cycle.
    """

    phase: RestartPhase
    chunk_size: int
    targets: list[WorkloadRef] = field(default_factory=list)
    chunk_index: int = 0
    failures: dict[WorkloadRef, str] = field(default_factory=dict)
    restarted: list[WorkloadRef] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")

    def chunks(self) -> list[list[WorkloadRef]]:
        """Partition targets into consecutive chunks of at most chunk_size."""
        return [self.targets[i : i + self.chunk_size] for i in range(0, len(self.targets), self.chunk_size)]

    @property
    def chunk_count(self) -> int:
        return len(self.chunks())

    def record_success(self, ref: WorkloadRef) -> None:
        self.restarted.append(ref)

    def record_failure(self, ref: WorkloadRef, error: str) -> None:
        self.failures[ref] = error
