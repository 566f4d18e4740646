"""Mesh-wide PeerAuthentication enforcing mutual TLS."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from meshop.models.resources import ResourceSpec
from meshop.resources.base import ISTIO_SYSTEM_NAMESPACE, MANAGED_BY_LABELS, ManagedResource

MTLS_MODE = "STRICT"


class PeerAuthenticationMtls(ManagedResource):
    """``default`` PeerAuthentication in istio-system.

    Every other resource assumes this policy exists, so the builder always
    lists it first. The mode is fixed; IstioOperator has no setting for it.
    """

    resource_name = "default"

    @property
    def name(self) -> str:
        return f"PeerAuthentication/{ISTIO_SYSTEM_NAMESPACE}/{self.resource_name}"

    def desired(self, overrides: Mapping[str, Any]) -> ResourceSpec:
        return ResourceSpec(
            group="security.istio.io",
            version="v1beta1",
            plural="peerauthentications",
            namespace=ISTIO_SYSTEM_NAMESPACE,
            name=self.resource_name,
            body={
                "apiVersion": "security.istio.io/v1beta1",
                "kind": "PeerAuthentication",
                "metadata": {
                    "name": self.resource_name,
                    "namespace": ISTIO_SYSTEM_NAMESPACE,
                    "labels": dict(MANAGED_BY_LABELS),
                },
                "spec": {"mtls": {"mode": MTLS_MODE}},
            },
        )

