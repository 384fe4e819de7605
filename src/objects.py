"""
Managed object model.

A ManagedObject is the live representation of one Kubernetes-style object
the operator owns (service, statefulset, pod disruption budget). Objects
convert to and from the plain dict form the API server speaks, which is
also the form the patch calculator compares.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


_MODELLED_METADATA = (
    "name",
    "namespace",
    "labels",
    "annotations",
    "ownerReferences",
    "resourceVersion",
    "uid",
)


@dataclass(frozen=True)
class ObjectKey:
    """Identity of a namespaced object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ManagedObject:
    """A namespaced API object with metadata, spec and status."""

    kind: str
    name: str
    namespace: str
    api_version: str = "v1"
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    owner_references: List[Dict[str, Any]] = field(default_factory=list)
    spec: Dict[str, Any] = field(default_factory=dict)
    status: Dict[str, Any] = field(default_factory=dict)
    resource_version: Optional[str] = None
    uid: Optional[str] = None
    # metadata the model does not name (finalizers, generateName, ...)
    extra_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    def deep_copy(self) -> "ManagedObject":
        return copy.deepcopy(self)

    def set_controller_reference(self, owner: Any) -> None:
        """
        Mark ``owner`` as the controlling owner of this object.

        Replaces any existing reference to the same owner uid and refuses to
        add a second controller.
        """
        ref = owner.owner_reference()
        for existing in self.owner_references:
            if existing.get("controller") and existing.get("uid") != ref["uid"]:
                raise ValueError(
                    f"{self.kind} {self.key} is already controlled by "
                    f"{existing.get('kind')} {existing.get('name')}"
                )
        self.owner_references = [
            r for r in self.owner_references if r.get("uid") != ref["uid"]
        ]
        self.owner_references.append(ref)

    def to_dict(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = copy.deepcopy(self.extra_metadata)
        metadata.update(
            {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
                "annotations": dict(self.annotations),
                "ownerReferences": copy.deepcopy(self.owner_references),
            }
        )
        if self.resource_version is not None:
            metadata["resourceVersion"] = self.resource_version
        if self.uid is not None:
            metadata["uid"] = self.uid

        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": copy.deepcopy(self.spec),
            "status": copy.deepcopy(self.status),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManagedObject":
        metadata = data.get("metadata") or {}
        return cls(
            kind=data["kind"],
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            api_version=data.get("apiVersion", "v1"),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            owner_references=copy.deepcopy(metadata.get("ownerReferences") or []),
            spec=copy.deepcopy(data.get("spec") or {}),
            status=copy.deepcopy(data.get("status") or {}),
            resource_version=metadata.get("resourceVersion"),
            uid=metadata.get("uid"),
            extra_metadata={
                k: copy.deepcopy(v)
                for k, v in metadata.items()
                if k not in _MODELLED_METADATA
            },
        )
