"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CustomResourceConfig:
    """Location of the Istio CR this operator instance reconciles."""

    group: str = "operator.kyma-project.io"
    version: str = "v1alpha2"
    plural: str = "istios"
    namespace: str = "kyma-system"
    name: str = "default"


@dataclass
class DiscoveryConfig:
    """Cluster size thresholds; below either one the cluster is Evaluation."""

    cpu_threshold_cores: int = 5
    memory_threshold_gb: int = 10


@dataclass
class RestartConfig:
    """Sidecar restart orchestration configuration."""

    chunk_size: int = 10
    platform_namespaces: tuple[str, ...] = ("kyma-system", "istio-system")


@dataclass
class ReconcileConfig:
    """Reconcile loop configuration."""

    interval_seconds: int = 60
    template_path: str = ""


@dataclass
class MetricsConfig:
    """Prometheus endpoint configuration."""

    enabled: bool = True
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class MeshopConfig:
    """Top-level operator configuration."""

    custom_resource: CustomResourceConfig = field(default_factory=CustomResourceConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    restart: RestartConfig = field(default_factory=RestartConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
