"""Managed mesh resources and their reconciliation."""

from meshop.resources.base import ManagedResource
from meshop.resources.builder import build_resource_set, needs_nlb_signal
from meshop.resources.peer_authentication import PeerAuthenticationMtls
from meshop.resources.proxy_protocol import ProxyProtocolEnvoyFilter
from meshop.resources.reconciler import ResourceReconciler

__all__ = [
    "ManagedResource",
    "PeerAuthenticationMtls",
    "ProxyProtocolEnvoyFilter",
    "ResourceReconciler",
    "build_resource_set",
    "needs_nlb_signal",
]
