"""Merging of the IstioOperator base template with cluster-specific overrides.

Flavor overrides come from a static table keyed by ClusterFlavor; provider
overrides depend on the provider and on whether NLB mode applies. The merge
is pure and deterministic: the same inputs always dump to the same YAML.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from meshop.errors import MergeError
from meshop.models.cluster import ClusterFlavor, ClusterProvider

OverrideDocument = dict[str, Any]

_FLAVOR_OVERRIDES: dict[ClusterFlavor, OverrideDocument] = {
    ClusterFlavor.K3D: {
        "spec": {
            "values": {
                "cni": {
                    "cniBinDir": "/bin",
                    "cniConfDir": "/var/lib/rancher/k3s/agent/etc/cni/net.d",
                },
            },
        },
    },
    ClusterFlavor.GKE: {
        "spec": {
            "values": {
                "cni": {
                    "cniBinDir": "/home/kubernetes/bin",
                    "resourceQuotas": {"enabled": True},
                },
            },
        },
    },
}

_NLB_GATEWAY_OVERRIDES: OverrideDocument = {
    "spec": {
        "values": {
            "gateways": {
                "istio-ingressgateway": {
                    "serviceAnnotations": {
                        "service.beta.kubernetes.io/aws-load-balancer-type": "nlb",
                    },
                },
            },
        },
    },
}

DEFAULT_TEMPLATE = "istio-operator.yaml"


def flavor_overrides(flavor: ClusterFlavor) -> OverrideDocument:
    """Overrides contributed by the cluster flavor; Gardener/Unknown add none."""
    return copy.deepcopy(_FLAVOR_OVERRIDES.get(flavor, {}))


def provider_overrides(provider: ClusterProvider, use_nlb: bool = False) -> OverrideDocument:
    """Overrides contributed by the provider; only AWS in NLB mode adds any."""
    if provider == ClusterProvider.AWS and use_nlb:
        return copy.deepcopy(_NLB_GATEWAY_OVERRIDES)
    return {}


def merge_documents(base: Mapping[str, Any], *overrides: Mapping[str, Any]) -> OverrideDocument:
    """Deep-merge *overrides* onto *base*, later documents winning at every depth.

    Two mappings merge recursively; any other pair of values is replaced by
    the override (lists are not concatenated). None in an override means
    "unset" and leaves the base value alone.

    Raises:
        MergeError: if a mapping meets a non-mapping at the same path.
    """
    merged = copy.deepcopy(dict(base))
    for override in overrides:
        _merge_into(merged, override, path="")
    return merged


def _merge_into(target: dict[str, Any], override: Mapping[str, Any], path: str) -> None:
    for key, value in override.items():
        key_path = f"{path}.{key}" if path else str(key)
        if value is None:
            continue
        if key not in target or target[key] is None:
            target[key] = copy.deepcopy(value)
            continue
        current = target[key]
        current_is_map = isinstance(current, Mapping)
        value_is_map = isinstance(value, Mapping)
        if current_is_map and value_is_map:
            _merge_into(current, value, key_path)
        elif current_is_map != value_is_map:
            raise MergeError(
                f"Cannot merge overrides at '{key_path}'",
                TypeError(f"{type(current).__name__} vs {type(value).__name__}"),
            )
        else:
            target[key] = copy.deepcopy(value)


def parse_template(template: str | bytes) -> OverrideDocument:
    try:
        document = yaml.safe_load(template)
    except yaml.YAMLError as exc:
        raise MergeError("Could not parse configuration template", exc) from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise MergeError(f"Configuration template must be a mapping, got {type(document).__name__}")
    return document


def dump_document(document: Mapping[str, Any]) -> str:
    return yaml.safe_dump(dict(document), sort_keys=True, default_flow_style=False)


def merge_overrides(template: str | bytes, *overrides: Mapping[str, Any]) -> str:
    """Parse *template*, merge *overrides* onto it and dump the result as YAML."""
    return dump_document(merge_documents(parse_template(template), *overrides))


def load_base_template(path: str | None = None) -> str:
    """Read the configured template file, or the one packaged with meshop."""
    if path:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise MergeError(f"Could not read configuration template {path}", exc) from exc
    return resources.files("meshop.clusterconfig").joinpath("templates", DEFAULT_TEMPLATE).read_text(encoding="utf-8")


def expected_proxy_image(document: Mapping[str, Any]) -> str:
    """``<hub>/proxyv2:<tag>`` as configured in the merged IstioOperator spec.

    An empty string means the document does not pin a proxy image.
    """
    spec = document.get("spec") or {}
    proxy = ((spec.get("values") or {}).get("global") or {}).get("proxy") or {}
    image = proxy.get("image") or "proxyv2"
    if "/" in image and ":" in image.rsplit("/", 1)[-1]:
        return str(image)
    hub, tag = spec.get("hub"), spec.get("tag")
    if not hub or not tag:
        return ""
    return f"{hub}/{image}:{tag}"
