"""Shared fixtures for meshop integration tests.

Provides an in-memory FakeCluster implementing the ClusterClient protocol so
integration tests can drive the full reconcile pipeline (discovery, merge,
resource reconciliation, sidecar restarts, status writes) without touching a
real Kubernetes cluster.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import pytest

from meshop.cluster.client import needs_update
from meshop.context import ReconcileContext
from meshop.models.cluster import NodeInfo
from meshop.models.config import MeshopConfig, RestartConfig
from meshop.models.resources import OperationResult, OwnerReference, ResourceSpec
from meshop.models.status import ReconciliationStatus
from meshop.models.workloads import WorkloadKind, WorkloadRef, WorkloadSelector

GIB = Decimal(2) ** 30
OLD_PROXY_IMAGE = "europe-docker.pkg.dev/kyma-project/prod/external/istio/proxyv2:1.19.0-distroless"
NEW_PROXY_IMAGE = "europe-docker.pkg.dev/kyma-project/prod/external/istio/proxyv2:1.20.3-distroless"

# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def make_node(
    name: str = "node-1",
    cpu: int = 4,
    memory_gib: int = 16,
    kubelet_version: str = "v1.28.5",
    os_image: str = "Ubuntu 22.04.3 LTS",
    provider_id: str = "",
) -> NodeInfo:
    return NodeInfo(
        name=name,
        allocatable_cpu=Decimal(cpu),
        allocatable_memory=memory_gib * GIB,
        kubelet_version=kubelet_version,
        os_image=os_image,
        provider_id=provider_id,
    )


def make_cr(name: str = "default", namespace: str = "kyma-system") -> dict[str, Any]:
    return {
        "apiVersion": "operator.kyma-project.io/v1alpha2",
        "kind": "Istio",
        "metadata": {"name": name, "namespace": namespace, "uid": "3f1c9a7e-uid"},
        "spec": {},
    }


# ---------------------------------------------------------------------------
# Fake cluster
# ---------------------------------------------------------------------------


@dataclass
class FakeCluster:
    """In-memory ClusterClient.

    Workloads map to the proxy image their pods currently run; a successful
    restart moves them to ``restart_to_image``. Failures are injected per
    resource name or workload.
    """

    nodes: list[NodeInfo] = field(default_factory=lambda: [make_node(provider_id="aws:///eu-central-1a/i-0abc")])
    workloads: dict[WorkloadRef, str] = field(default_factory=dict)
    restart_to_image: str = NEW_PROXY_IMAGE
    use_nlb: bool = False
    list_nodes_error: Exception | None = None
    list_workloads_errors: dict[str, Exception] = field(default_factory=dict)
    resource_errors: dict[str, Exception] = field(default_factory=dict)
    restart_errors: dict[WorkloadRef, Exception] = field(default_factory=dict)

    objects: dict[tuple[str, str, str], dict[str, Any]] = field(default_factory=dict)
    applied: list[tuple[str, OperationResult]] = field(default_factory=list)
    restarted: list[WorkloadRef] = field(default_factory=list)
    restart_attempts: list[WorkloadRef] = field(default_factory=list)
    statuses: list[tuple[ReconciliationStatus, str]] = field(default_factory=list)
    nlb_queries: int = 0

    async def list_nodes(self) -> list[NodeInfo]:
        if self.list_nodes_error is not None:
            raise self.list_nodes_error
        return list(self.nodes)

    async def should_use_nlb(self) -> bool:
        self.nlb_queries += 1
        return self.use_nlb

    async def create_or_update(self, spec: ResourceSpec, owner: OwnerReference) -> OperationResult:
        error = self.resource_errors.get(spec.name)
        if error is not None:
            raise error
        key = (spec.plural, spec.namespace, spec.name)
        live = self.objects.get(key)
        body = copy.deepcopy(spec.body)
        body["metadata"]["ownerReferences"] = [owner.to_manifest()]
        if live is None:
            result = OperationResult.CREATED
        elif needs_update(live, spec, owner):
            result = OperationResult.UPDATED
        else:
            result = OperationResult.UNCHANGED
        if result != OperationResult.UNCHANGED:
            self.objects[key] = body
        self.applied.append((spec.name, result))
        return result

    async def list_workloads(
        self, selector: WorkloadSelector, ctx: ReconcileContext | None = None
    ) -> list[WorkloadRef]:
        if ctx is not None:
            ctx.checkpoint("listing workloads")
        scope = "platform" if selector.namespaces else "customer"
        error = self.list_workloads_errors.get(scope)
        if error is not None:
            raise error
        return sorted(
            ref
            for ref, image in self.workloads.items()
            if selector.admits_namespace(ref.namespace)
            and not (selector.expected_proxy_image and image == selector.expected_proxy_image)
        )

    async def restart_workload(self, ref: WorkloadRef) -> None:
        self.restart_attempts.append(ref)
        error = self.restart_errors.get(ref)
        if error is not None:
            raise error
        self.workloads[ref] = self.restart_to_image
        self.restarted.append(ref)

    async def get_custom_resource(self) -> dict[str, Any] | None:
        return make_cr()

    async def update_status(self, cr: dict[str, Any], state: ReconciliationStatus, description: str) -> None:
        self.statuses.append((state, description))

    @property
    def final_status(self) -> ReconciliationStatus:
        return self.statuses[-1][0]


def deployments(namespace: str, count: int, image: str = OLD_PROXY_IMAGE) -> dict[WorkloadRef, str]:
    return {WorkloadRef(namespace, WorkloadKind.DEPLOYMENT, f"app-{i:02d}"): image for i in range(count)}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def config() -> MeshopConfig:
    return MeshopConfig(restart=RestartConfig(chunk_size=10))


@pytest.fixture
def istio_cr() -> dict[str, Any]:
    return make_cr()
