"""Core data structures for meshop."""

from meshop.models.cluster import (
    ClusterFlavor,
    ClusterProfile,
    ClusterProvider,
    ClusterSize,
    NodeInfo,
)
from meshop.models.config import MeshopConfig
from meshop.models.resources import OperationResult, OwnerReference, ResourceSpec
from meshop.models.status import ReconciliationStatus, RestartOutcome, RestartStatus
from meshop.models.workloads import (
    RestartPhase,
    RestartPlan,
    WorkloadKind,
    WorkloadRef,
    WorkloadSelector,
)

__all__ = [
    "ClusterFlavor",
    "ClusterProfile",
    "ClusterProvider",
    "ClusterSize",
    "MeshopConfig",
    "NodeInfo",
    "OperationResult",
    "OwnerReference",
    "ReconciliationStatus",
    "ResourceSpec",
    "RestartOutcome",
    "RestartPhase",
    "RestartPlan",
    "RestartStatus",
    "WorkloadKind",
    "WorkloadRef",
    "WorkloadSelector",
]
