"""Cluster topology discovery.

Classifies the cluster by size (allocatable capacity), flavor (kubelet
version / OS image signatures) and provider (node provider-ID prefix).
The classifiers are pure functions over a node list; ClusterTopologyDiscoverer
adds the node listing and maps listing failures to DiscoveryError.

Nothing is cached: the profile is recomputed every reconcile cycle so that a
resized or migrated cluster is picked up on the next run.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from meshop.errors import DiscoveryError
from meshop.models.cluster import ClusterFlavor, ClusterProfile, ClusterProvider, ClusterSize, NodeInfo
from meshop.observability.logging import get_logger

if TYPE_CHECKING:
    from meshop.cluster.client import ClusterClient
    from meshop.context import ReconcileContext
    from meshop.models.config import DiscoveryConfig

_logger = get_logger("clusterconfig.discovery")

PRODUCTION_CLUSTER_CPU_THRESHOLD = 5
PRODUCTION_CLUSTER_MEMORY_THRESHOLD_GB = 10
_GIGA = Decimal(10) ** 9


@dataclass(frozen=True)
class ClassificationRule:
    """Maps a regex over one NodeInfo field to a flavor."""

    node_field: str
    pattern: re.Pattern[str]
    flavor: ClusterFlavor

    def matches(self, node: NodeInfo) -> bool:
        return self.pattern.match(getattr(node, self.node_field)) is not None


# Priority order: within a single node the first matching rule wins.
FLAVOR_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule("kubelet_version", re.compile(r"^v\d+\.\d+\.\d+-gke\.\d+$"), ClusterFlavor.GKE),
    ClassificationRule("kubelet_version", re.compile(r"^v\d+\.\d+\.\d+\+k3s\d+$"), ClusterFlavor.K3D),
    ClassificationRule("os_image", re.compile(r"^Garden Linux \d+.\d+$"), ClusterFlavor.GARDENER),
)

PROVIDER_PREFIXES: tuple[tuple[str, ClusterProvider], ...] = (
    ("aws://", ClusterProvider.AWS),
    ("openstack://", ClusterProvider.OPENSTACK),
)


def classify_size(
    nodes: Sequence[NodeInfo],
    cpu_threshold_cores: int = PRODUCTION_CLUSTER_CPU_THRESHOLD,
    memory_threshold_gb: int = PRODUCTION_CLUSTER_MEMORY_THRESHOLD_GB,
) -> ClusterSize:
    """Evaluation if total CPU or total memory is strictly below its threshold."""
    cpu = sum((node.allocatable_cpu for node in nodes), Decimal(0))
    memory = sum((node.allocatable_memory for node in nodes), Decimal(0))
    if cpu < cpu_threshold_cores or memory < memory_threshold_gb * _GIGA:
        return ClusterSize.EVALUATION
    return ClusterSize.PRODUCTION


def classify_flavor(
    nodes: Sequence[NodeInfo],
    rules: Sequence[ClassificationRule] = FLAVOR_RULES,
) -> ClusterFlavor:
    """The first node (listing order) matching any rule decides the flavor."""
    for node in nodes:
        for rule in rules:
            if rule.matches(node):
                return rule.flavor
    return ClusterFlavor.UNKNOWN


def classify_provider(nodes: Sequence[NodeInfo]) -> ClusterProvider:
    """Guess the hyperscaler from the first node; all nodes share a provider."""
    if not nodes:
        # A zero-node cluster still needs a determinate answer.
        _logger.info("empty node list, using 'other' as provider")
        return ClusterProvider.OTHER
    provider_id = nodes[0].provider_id
    for prefix, provider in PROVIDER_PREFIXES:
        if provider_id.startswith(prefix):
            return provider
    return ClusterProvider.OTHER


class ClusterTopologyDiscoverer:
    """Reads the node inventory and classifies the cluster.

    Each ``evaluate_*`` / ``discover_*`` / ``get_*`` call lists nodes once;
    ``evaluate_cluster_profile`` derives all three classifications from a
    single listing.
    """

    def __init__(self, client: ClusterClient, config: DiscoveryConfig | None = None) -> None:
        self._client = client
        self._cpu_threshold = config.cpu_threshold_cores if config else PRODUCTION_CLUSTER_CPU_THRESHOLD
        self._memory_threshold = config.memory_threshold_gb if config else PRODUCTION_CLUSTER_MEMORY_THRESHOLD_GB

    async def _list_nodes(self, ctx: ReconcileContext) -> list[NodeInfo]:
        ctx.checkpoint("listing nodes")
        try:
            return await self._client.list_nodes()
        except Exception as exc:
            _logger.error("node listing failed", error=str(exc))
            raise DiscoveryError("Could not list cluster nodes", exc) from exc

    async def evaluate_cluster_size(self, ctx: ReconcileContext) -> ClusterSize:
        nodes = await self._list_nodes(ctx)
        return classify_size(nodes, self._cpu_threshold, self._memory_threshold)

    async def discover_cluster_flavor(self, ctx: ReconcileContext) -> ClusterFlavor:
        return classify_flavor(await self._list_nodes(ctx))

    async def get_cluster_provider(self, ctx: ReconcileContext) -> ClusterProvider:
        return classify_provider(await self._list_nodes(ctx))

    async def evaluate_cluster_profile(self, ctx: ReconcileContext) -> ClusterProfile:
        nodes = await self._list_nodes(ctx)
        profile = ClusterProfile(
            size=classify_size(nodes, self._cpu_threshold, self._memory_threshold),
            flavor=classify_flavor(nodes),
            provider=classify_provider(nodes),
        )
        _logger.info("cluster profile evaluated", nodes=len(nodes), **profile.as_dict())
        return profile
