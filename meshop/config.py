"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from meshop.models.config import (
    CustomResourceConfig,
    DiscoveryConfig,
    LogConfig,
    MeshopConfig,
    MetricsConfig,
    ReconcileConfig,
    RestartConfig,
)

_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"MESHOP_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = _env(key, ",".join(default))
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_namespaces(values: tuple[str, ...]) -> tuple[str, ...]:
    for ns in values:
        if not _DNS_LABEL.match(ns):
            raise ValueError(f"Invalid namespace name: {ns!r}")
    return values


def _validate_chunk_size(value: int) -> int:
    if value < 1:
        raise ValueError(f"Restart chunk size must be at least 1, got {value}")
    return value


def load_config() -> MeshopConfig:
    """Load configuration from MESHOP_* environment variables."""
    return MeshopConfig(
        custom_resource=CustomResourceConfig(
            namespace=_validate_namespaces((_env("CR_NAMESPACE", "kyma-system"),))[0],
            name=_env("CR_NAME", "default"),
        ),
        discovery=DiscoveryConfig(
            cpu_threshold_cores=_env_int("CPU_THRESHOLD", 5, min_val=0),
            memory_threshold_gb=_env_int("MEMORY_THRESHOLD_GB", 10, min_val=0),
        ),
        restart=RestartConfig(
            chunk_size=_validate_chunk_size(int(_env("RESTART_CHUNK_SIZE", "10"))),
            platform_namespaces=_validate_namespaces(
                _env_list("PLATFORM_NAMESPACES", ("kyma-system", "istio-system"))
            ),
        ),
        reconcile=ReconcileConfig(
            interval_seconds=_env_int("RECONCILE_INTERVAL", 60, min_val=5, max_val=3600),
            template_path=_env("TEMPLATE_PATH", ""),
        ),
        metrics=MetricsConfig(
            enabled=_env_bool("METRICS_ENABLED", True),
            port=_env_int("METRICS_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
