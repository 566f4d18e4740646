"""Provider-dependent set of managed mesh resources.

The membership is a table, not branching code: each provider maps to an
ordered tuple of (resource class, constructor parameters). A parameter
value of ``USE_NLB`` is resolved from the external "should use NLB" signal,
which the caller queries only when ``needs_nlb_signal`` says so.

Order matters: a resource must come after anything it depends on, so the
baseline PeerAuthentication is always first.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from meshop.models.cluster import ClusterProvider
from meshop.resources.base import ManagedResource
from meshop.resources.peer_authentication import PeerAuthenticationMtls
from meshop.resources.proxy_protocol import ProxyProtocolEnvoyFilter

USE_NLB = object()

ResourceEntry = tuple[type[ManagedResource], Mapping[str, Any]]

_BASELINE: tuple[ResourceEntry, ...] = ((PeerAuthenticationMtls, {}),)

RESOURCE_TABLE: dict[ClusterProvider, tuple[ResourceEntry, ...]] = {
    ClusterProvider.AWS: (*_BASELINE, (ProxyProtocolEnvoyFilter, {"use_nlb": USE_NLB})),
    # NLB is only ever the default on AWS.
    ClusterProvider.OPENSTACK: (*_BASELINE, (ProxyProtocolEnvoyFilter, {"use_nlb": False})),
    ClusterProvider.OTHER: _BASELINE,
}


def needs_nlb_signal(provider: ClusterProvider) -> bool:
    """True when building the set for *provider* consumes the NLB signal."""
    return any(value is USE_NLB for _, params in RESOURCE_TABLE.get(provider, _BASELINE) for value in params.values())


def build_resource_set(provider: ClusterProvider, use_nlb: bool = False) -> list[ManagedResource]:
    """Instantiate the ordered resource list for *provider*."""
    resources: list[ManagedResource] = []
    for resource_cls, params in RESOURCE_TABLE.get(provider, _BASELINE):
        kwargs = {key: (use_nlb if value is USE_NLB else value) for key, value in params.items()}
        resources.append(resource_cls(**kwargs))
    return resources
