"""Cluster configuration: topology discovery and override merging.

Submodules:
    discovery -- ClusterTopologyDiscoverer and the size/flavor/provider classifiers.
    overrides -- Flavor/provider override tables and the YAML deep merge.
"""

from meshop.clusterconfig.discovery import ClassificationRule, ClusterTopologyDiscoverer
from meshop.clusterconfig.overrides import (
    expected_proxy_image,
    flavor_overrides,
    load_base_template,
    merge_documents,
    merge_overrides,
    provider_overrides,
)

__all__ = [
    "ClassificationRule",
    "ClusterTopologyDiscoverer",
    "expected_proxy_image",
    "flavor_overrides",
    "load_base_template",
    "merge_documents",
    "merge_overrides",
    "provider_overrides",
]
