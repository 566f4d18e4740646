"""Cluster topology data structures."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum


class ClusterSize(StrEnum):
    """Capacity-based classification of the cluster."""

    UNKNOWN = "Unknown"
    EVALUATION = "Evaluation"
    PRODUCTION = "Production"


class ClusterFlavor(StrEnum):
    """Distribution/manager of the cluster, guessed from node metadata."""

    UNKNOWN = "Unknown"
    K3D = "k3d"
    GKE = "GKE"
    GARDENER = "Gardener"


class ClusterProvider(StrEnum):
    """Hyperscaler backing the nodes, guessed from the node provider ID."""

    AWS = "aws"
    OPENSTACK = "openstack"
    OTHER = "other"


@dataclass(frozen=True)
class NodeInfo:
    """The slice of a v1.Node that topology discovery looks at.

    CPU is in cores and memory in bytes.
    """

    name: str
    allocatable_cpu: Decimal = Decimal(0)
    allocatable_memory: Decimal = Decimal(0)
    kubelet_version: str = ""
    os_image: str = ""
    provider_id: str = ""


@dataclass(frozen=True)
class ClusterProfile:
    """Classification of the cluster, derived fresh on every reconcile cycle."""

    size: ClusterSize = ClusterSize.UNKNOWN
    flavor: ClusterFlavor = ClusterFlavor.UNKNOWN
    provider: ClusterProvider = ClusterProvider.OTHER

    def as_dict(self) -> dict[str, str]:
        return {"size": self.size.value, "flavor": self.flavor.value, "provider": self.provider.value}
