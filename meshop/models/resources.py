"""Managed-resource data structures shared by the reconciler and the client."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class OperationResult(StrEnum):
    """What create_or_update() did to the live object."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class OwnerReference:
    """metadata.ownerReferences entry pointing at the Istio CR.

    Stamped on every managed resource so that deleting the CR garbage-collects
    them.
    """

    api_version: str
    kind: str
    name: str
    uid: str

    @classmethod
    def from_custom_resource(cls, cr: dict[str, Any]) -> OwnerReference:
        metadata = cr.get("metadata", {})
        return cls(
            api_version=str(cr.get("apiVersion", "")),
            kind=str(cr.get("kind", "")),
            name=str(metadata.get("name", "")),
            uid=str(metadata.get("uid", "")),
        )

    def to_manifest(self) -> dict[str, str]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
        }


@dataclass(frozen=True)
class ResourceSpec:
    """Desired state of one namespaced custom object.

    ``body`` is the full manifest (apiVersion, kind, metadata, spec) without
    owner references; create_or_update() stamps those.
    """

    group: str
    version: str
    plural: str
    namespace: str
    name: str
    body: dict[str, Any]

    @property
    def kind(self) -> str:
        return str(self.body.get("kind", ""))
