"""Base class for mesh resources kept in sync by the operator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from meshop.models.resources import OperationResult, OwnerReference, ResourceSpec

if TYPE_CHECKING:
    from meshop.cluster.client import ClusterClient

ISTIO_SYSTEM_NAMESPACE = "istio-system"
MANAGED_BY_LABELS = {
    "kyma-project.io/module": "istio",
    "app.kubernetes.io/managed-by": "meshop",
}


class ManagedResource(ABC):
    """A cluster object owned by the Istio CR.

    Subclasses describe their desired state; ``reconcile`` applies it with a
    create-or-update so repeated runs without drift are no-ops.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs, metrics and error descriptions."""

    @abstractmethod
    def desired(self, overrides: Mapping[str, Any]) -> ResourceSpec:
        """Desired state given the merged override document."""

    async def reconcile(
        self,
        client: ClusterClient,
        owner: OwnerReference,
        overrides: Mapping[str, Any],
    ) -> OperationResult:
        return await client.create_or_update(self.desired(overrides), owner)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
