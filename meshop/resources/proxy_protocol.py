"""EnvoyFilter enabling the PROXY protocol listener on the ingress gateway."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from meshop.models.resources import ResourceSpec
from meshop.resources.base import ISTIO_SYSTEM_NAMESPACE, MANAGED_BY_LABELS, ManagedResource

_PROXY_PROTOCOL_TYPE = "type.googleapis.com/envoy.extensions.filters.listener.proxy_protocol.v3.ProxyProtocol"


class ProxyProtocolEnvoyFilter(ManagedResource):
    """``proxy-protocol`` EnvoyFilter for load balancers that send PROXY headers.

    In NLB mode the gateway also accepts connections without a PROXY header,
    because NLB health checks do not carry one.
    """

    resource_name = "proxy-protocol"

    def __init__(self, use_nlb: bool = False) -> None:
        self.use_nlb = use_nlb

    @property
    def name(self) -> str:
        return f"EnvoyFilter/{ISTIO_SYSTEM_NAMESPACE}/{self.resource_name}"

    def desired(self, overrides: Mapping[str, Any]) -> ResourceSpec:
        typed_config: dict[str, Any] = {"@type": _PROXY_PROTOCOL_TYPE}
        if self.use_nlb:
            typed_config["allow_requests_without_proxy_protocol"] = True
        return ResourceSpec(
            group="networking.istio.io",
            version="v1alpha3",
            plural="envoyfilters",
            namespace=ISTIO_SYSTEM_NAMESPACE,
            name=self.resource_name,
            body={
                "apiVersion": "networking.istio.io/v1alpha3",
                "kind": "EnvoyFilter",
                "metadata": {
                    "name": self.resource_name,
                    "namespace": ISTIO_SYSTEM_NAMESPACE,
                    "labels": dict(MANAGED_BY_LABELS),
                },
                "spec": {
                    "workloadSelector": {"labels": {"istio": "ingressgateway"}},
                    "configPatches": [
                        {
                            "applyTo": "LISTENER",
                            "patch": {
                                "operation": "MERGE",
                                "value": {
                                    "listener_filters": [
                                        {
                                            "name": "envoy.filters.listener.proxy_protocol",
                                            "typed_config": typed_config,
                                        }
                                    ],
                                },
                            },
                        }
                    ],
                },
            },
        )

    def __repr__(self) -> str:
        return f"ProxyProtocolEnvoyFilter(use_nlb={self.use_nlb})"
