"""Cluster-API adapter used by discovery, resource reconciliation and restarts.

ClusterClient            -- Protocol the core depends on; tests use in-memory fakes.
KubernetesClusterClient  -- kubernetes-asyncio implementation.

The adapter does no retrying and no caching across calls. An ApiException
propagates to the component that issued the call, except a 404 on an object
that may legitimately be absent.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from meshop.cluster.quantity import parse_quantity
from meshop.models.cluster import NodeInfo
from meshop.models.resources import OperationResult, OwnerReference, ResourceSpec
from meshop.models.status import ReconciliationStatus
from meshop.models.workloads import WorkloadKind, WorkloadRef, WorkloadSelector
from meshop.observability.logging import get_logger

if TYPE_CHECKING:
    from meshop.context import ReconcileContext
    from meshop.models.config import CustomResourceConfig

_log = get_logger("cluster.client")

SIDECAR_INJECTED_LABEL = "security.istio.io/tlsMode=istio"
SIDECAR_CONTAINER_NAME = "istio-proxy"
RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"
ELB_DEPRECATED_CONFIGMAP = "elb-deprecated"
ISTIO_SYSTEM_NAMESPACE = "istio-system"


class ClusterClient(Protocol):
    """Capabilities the reconcile core consumes from the cluster API."""

    async def list_nodes(self) -> list[NodeInfo]: ...

    async def create_or_update(self, spec: ResourceSpec, owner: OwnerReference) -> OperationResult: ...

    async def list_workloads(
        self, selector: WorkloadSelector, ctx: ReconcileContext | None = None
    ) -> list[WorkloadRef]: ...

    async def restart_workload(self, ref: WorkloadRef) -> None: ...

    async def should_use_nlb(self) -> bool: ...

    async def get_custom_resource(self) -> dict[str, Any] | None: ...

    async def update_status(self, cr: dict[str, Any], state: ReconciliationStatus, description: str) -> None: ...


def node_info_from_v1(node: Any) -> NodeInfo:
    """Extract NodeInfo from a kubernetes-asyncio V1Node."""
    status = node.status
    allocatable = (status.allocatable if status is not None else None) or {}
    node_info = status.node_info if status is not None else None
    return NodeInfo(
        name=node.metadata.name,
        allocatable_cpu=parse_quantity(allocatable.get("cpu")),
        allocatable_memory=parse_quantity(allocatable.get("memory")),
        kubelet_version=(node_info.kubelet_version if node_info is not None else "") or "",
        os_image=(node_info.os_image if node_info is not None else "") or "",
        provider_id=(node.spec.provider_id if node.spec is not None else "") or "",
    )


def _has_owner(live: dict[str, Any], owner: OwnerReference) -> bool:
    for ref in live.get("metadata", {}).get("ownerReferences") or []:
        if ref.get("uid") == owner.uid and ref.get("kind") == owner.kind and ref.get("name") == owner.name:
            return True
    return False


def needs_update(live: dict[str, Any], spec: ResourceSpec, owner: OwnerReference) -> bool:
    """Return True when *live* differs from the desired *spec* or lacks the owner."""
    if live.get("spec") != spec.body.get("spec"):
        return True
    live_labels = live.get("metadata", {}).get("labels") or {}
    desired_labels = spec.body.get("metadata", {}).get("labels") or {}
    if any(live_labels.get(k) != v for k, v in desired_labels.items()):
        return True
    return not _has_owner(live, owner)


def _sidecar_image(pod: Any) -> str | None:
    """Image of the istio-proxy container; native sidecars live in init containers."""
    spec = pod.spec
    if spec is None:
        return None
    for container in list(spec.containers or []) + list(spec.init_containers or []):
        if container.name == SIDECAR_CONTAINER_NAME:
            return str(container.image or "")
    return None


def _controller_of(metadata: Any) -> Any | None:
    for ref in metadata.owner_references or []:
        if ref.controller:
            return ref
    return None


def _checkpoint(ctx: ReconcileContext | None, where: str) -> None:
    if ctx is not None:
        ctx.checkpoint(where)


def rollout_in_progress(kind: WorkloadKind, workload: Any) -> bool:
    """True while a controller is still replacing pods of an earlier template.

    Patching such a workload again would start yet another rollout before
    the previous one finished, so the restart waits for a later cycle.
    """
    status = workload.status
    if status is None:
        return True
    if (status.observed_generation or 0) < (workload.metadata.generation or 0):
        return True
    if kind == WorkloadKind.DAEMON_SET:
        return (status.updated_number_scheduled or 0) < (status.desired_number_scheduled or 0)

    desired = workload.spec.replicas if workload.spec.replicas is not None else 1
    updated = status.updated_replicas or 0
    if updated < desired or (status.replicas or 0) > updated:
        return True
    if kind == WorkloadKind.STATEFUL_SET and status.update_revision:
        return status.current_revision != status.update_revision
    return False


class KubernetesClusterClient:
    """ClusterClient backed by kubernetes-asyncio.

    Args:
        api_client:      Shared kubernetes-asyncio ApiClient.
        custom_resource: Location of the Istio CR reconciled by this instance.
    """

    def __init__(self, api_client: Any, custom_resource: CustomResourceConfig) -> None:
        self._core = k8s_client.CoreV1Api(api_client)
        self._apps = k8s_client.AppsV1Api(api_client)
        self._custom = k8s_client.CustomObjectsApi(api_client)
        self._cr = custom_resource

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def list_nodes(self) -> list[NodeInfo]:
        node_list = await self._core.list_node()
        return [node_info_from_v1(node) for node in node_list.items]

    async def should_use_nlb(self) -> bool:
        """NLB mode applies once the ELB-deprecation marker ConfigMap exists."""
        try:
            await self._core.read_namespaced_config_map(ELB_DEPRECATED_CONFIGMAP, ISTIO_SYSTEM_NAMESPACE)
        except ApiException as exc:
            if exc.status == 404:
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # Managed resources
    # ------------------------------------------------------------------

    async def create_or_update(self, spec: ResourceSpec, owner: OwnerReference) -> OperationResult:
        try:
            live = await self._custom.get_namespaced_custom_object(
                spec.group, spec.version, spec.namespace, spec.plural, spec.name
            )
        except ApiException as exc:
            if exc.status != 404:
                raise
            body = _with_owner(spec.body, owner)
            await self._custom.create_namespaced_custom_object(
                spec.group, spec.version, spec.namespace, spec.plural, body
            )
            return OperationResult.CREATED

        if not needs_update(live, spec, owner):
            return OperationResult.UNCHANGED

        metadata = live.setdefault("metadata", {})
        labels = metadata.get("labels") or {}
        labels.update(spec.body.get("metadata", {}).get("labels") or {})
        metadata["labels"] = labels
        if not _has_owner(live, owner):
            metadata["ownerReferences"] = [*(metadata.get("ownerReferences") or []), owner.to_manifest()]
        live["spec"] = spec.body.get("spec")
        await self._custom.replace_namespaced_custom_object(
            spec.group, spec.version, spec.namespace, spec.plural, spec.name, live
        )
        return OperationResult.UPDATED

    # ------------------------------------------------------------------
    # Workloads
    # ------------------------------------------------------------------

    async def list_workloads(
        self, selector: WorkloadSelector, ctx: ReconcileContext | None = None
    ) -> list[WorkloadRef]:
        """Resolve stale sidecar-injected pods to the workloads that own them.

        Pods without a controller are skipped: nothing would recreate them
        after an eviction. Controllers still rolling out an earlier template
        are skipped until that rollout finishes.
        """
        _checkpoint(ctx, "listing sidecar-injected pods")
        pods = await self._core.list_pod_for_all_namespaces(label_selector=SIDECAR_INJECTED_LABEL)
        replica_set_owners: dict[tuple[str, str], WorkloadRef | None] = {}
        candidates: set[WorkloadRef] = set()

        for pod in pods.items:
            metadata = pod.metadata
            namespace = metadata.namespace
            if not selector.admits_namespace(namespace) or metadata.deletion_timestamp is not None:
                continue
            image = _sidecar_image(pod)
            if image is None:
                continue
            if selector.expected_proxy_image and image == selector.expected_proxy_image:
                continue

            ref = await self._resolve_owner(ctx, pod, replica_set_owners)
            if ref is not None:
                candidates.add(ref)

        refs: list[WorkloadRef] = []
        for ref in sorted(candidates):
            if ref.kind != WorkloadKind.POD and not await self._rollout_settled(ctx, ref):
                continue
            refs.append(ref)
        return refs

    async def _resolve_owner(
        self,
        ctx: ReconcileContext | None,
        pod: Any,
        replica_set_owners: dict[tuple[str, str], WorkloadRef | None],
    ) -> WorkloadRef | None:
        metadata = pod.metadata
        namespace = metadata.namespace
        owner = _controller_of(metadata)
        if owner is None:
            _log.info("pod_without_controller_skipped", pod=metadata.name, namespace=namespace)
            return None

        if owner.kind == "ReplicaSet":
            key = (namespace, owner.name)
            if key not in replica_set_owners:
                _checkpoint(ctx, f"reading ReplicaSet {namespace}/{owner.name}")
                try:
                    replica_set = await self._apps.read_namespaced_replica_set(owner.name, namespace)
                except ApiException as exc:
                    if exc.status != 404:
                        raise
                    # Replaced mid-rollout; its pods are going away anyway.
                    _log.debug("replica_set_gone", pod=metadata.name, namespace=namespace, replica_set=owner.name)
                    return None
                rs_owner = _controller_of(replica_set.metadata)
                if rs_owner is not None and rs_owner.kind == "Deployment":
                    replica_set_owners[key] = WorkloadRef(namespace, WorkloadKind.DEPLOYMENT, rs_owner.name)
                else:
                    replica_set_owners[key] = None
            resolved = replica_set_owners[key]
            # A bare ReplicaSet recreates an evicted pod from its own template.
            return resolved or WorkloadRef(namespace, WorkloadKind.POD, metadata.name)
        if owner.kind == "StatefulSet":
            return WorkloadRef(namespace, WorkloadKind.STATEFUL_SET, owner.name)
        if owner.kind == "DaemonSet":
            return WorkloadRef(namespace, WorkloadKind.DAEMON_SET, owner.name)

        _log.debug("pod_owner_not_restartable", pod=metadata.name, namespace=namespace, owner_kind=owner.kind)
        return None

    async def _rollout_settled(self, ctx: ReconcileContext | None, ref: WorkloadRef) -> bool:
        read = {
            WorkloadKind.DEPLOYMENT: self._apps.read_namespaced_deployment,
            WorkloadKind.STATEFUL_SET: self._apps.read_namespaced_stateful_set,
            WorkloadKind.DAEMON_SET: self._apps.read_namespaced_daemon_set,
        }[ref.kind]
        _checkpoint(ctx, f"reading {ref}")
        try:
            workload = await read(ref.name, ref.namespace)
        except ApiException as exc:
            if exc.status != 404:
                raise
            _log.debug("workload_gone", workload=str(ref))
            return False
        if rollout_in_progress(ref.kind, workload):
            _log.info("rollout_in_progress_skipped", workload=str(ref))
            return False
        return True

    async def restart_workload(self, ref: WorkloadRef) -> None:
        if ref.kind == WorkloadKind.POD:
            eviction = k8s_client.V1Eviction(
                metadata=k8s_client.V1ObjectMeta(name=ref.name, namespace=ref.namespace),
            )
            await self._core.create_namespaced_pod_eviction(ref.name, ref.namespace, eviction)
            return

        body = {
            "spec": {
                "template": {
                    "metadata": {
                        "annotations": {RESTARTED_AT_ANNOTATION: datetime.now(tz=UTC).isoformat()},
                    }
                }
            }
        }
        patch = {
            WorkloadKind.DEPLOYMENT: self._apps.patch_namespaced_deployment,
            WorkloadKind.STATEFUL_SET: self._apps.patch_namespaced_stateful_set,
            WorkloadKind.DAEMON_SET: self._apps.patch_namespaced_daemon_set,
        }[ref.kind]
        await patch(ref.name, ref.namespace, body)

    # ------------------------------------------------------------------
    # Istio CR
    # ------------------------------------------------------------------

    async def get_custom_resource(self) -> dict[str, Any] | None:
        try:
            cr: dict[str, Any] = await self._custom.get_namespaced_custom_object(
                self._cr.group, self._cr.version, self._cr.namespace, self._cr.plural, self._cr.name
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise
        return cr

    async def update_status(self, cr: dict[str, Any], state: ReconciliationStatus, description: str) -> None:
        metadata = cr.get("metadata", {})
        body = {"status": {"state": state.value, "description": description}}
        await self._custom.patch_namespaced_custom_object_status(
            self._cr.group,
            self._cr.version,
            metadata.get("namespace", self._cr.namespace),
            self._cr.plural,
            metadata.get("name", self._cr.name),
            body,
        )


def _with_owner(body: dict[str, Any], owner: OwnerReference) -> dict[str, Any]:
    metadata = dict(body.get("metadata", {}))
    metadata["ownerReferences"] = [owner.to_manifest()]
    return {**body, "metadata": metadata}
