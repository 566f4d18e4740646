"""Cluster-API access for meshop.

Submodules:
    client   -- ClusterClient protocol and its kubernetes-asyncio implementation.
    quantity -- Kubernetes resource quantity parsing.
"""

from meshop.cluster.client import ClusterClient, KubernetesClusterClient

__all__ = ["ClusterClient", "KubernetesClusterClient"]
