"""
Cluster - the owner object every managed resource is subordinate to.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from conditions import ClusterCondition, ConditionStatus
from objects import ObjectKey
from validation import validate_cluster_spec

API_VERSION = "crdb.cockroachlabs.com/v1alpha1"
KIND = "CrdbCluster"


@dataclass
class ClusterSpec:
    """Desired state of a cluster."""

    nodes: int
    image: str
    grpc_port: int = 26258
    http_port: int = 8080
    sql_port: int = 26257
    storage_size: str = "10Gi"
    max_unavailable: int = 1
    resources: Dict[str, Any] = field(default_factory=dict)
    additional_labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClusterSpec":
        """
        Build a spec from its API (camelCase) form.

        Raises:
            ValueError: If the spec fails schema validation
        """
        is_valid, error = validate_cluster_spec(data)
        if not is_valid:
            raise ValueError(f"Invalid cluster spec: {error}")

        return cls(
            nodes=data["nodes"],
            image=data["image"],
            grpc_port=data.get("grpcPort", 26258),
            http_port=data.get("httpPort", 8080),
            sql_port=data.get("sqlPort", 26257),
            storage_size=data.get("storageSize", "10Gi"),
            max_unavailable=data.get("maxUnavailable", 1),
            resources=copy.deepcopy(data.get("resources") or {}),
            additional_labels=dict(data.get("additionalLabels") or {}),
        )


@dataclass
class ClusterStatus:
    """Observed state the host loop reports back on the cluster."""

    operation_action: Optional[str] = None
    action_errors: Dict[str, str] = field(default_factory=dict)

    def record_failure(self, action_type: str, message: str) -> None:
        self.action_errors[action_type] = message

    def clear_failure(self, action_type: str) -> None:
        self.action_errors.pop(action_type, None)


@dataclass
class Cluster:
    """A database cluster and its lifecycle conditions."""

    namespace: str
    name: str
    spec: ClusterSpec
    uid: str = ""
    conditions: List[ClusterCondition] = field(default_factory=list)
    status: ClusterStatus = field(default_factory=ClusterStatus)

    @property
    def object_key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    def labels(self) -> Dict[str, str]:
        """Common labels carried by every managed object."""
        labels = dict(self.spec.additional_labels)
        labels.update(self.selector())
        labels["app.kubernetes.io/component"] = "database"
        return labels

    def selector(self) -> Dict[str, str]:
        """Labels used to select the cluster's pods."""
        return {
            "app.kubernetes.io/name": "cockroachdb",
            "app.kubernetes.io/instance": self.name,
        }

    def owner_reference(self) -> Dict[str, Any]:
        return {
            "apiVersion": API_VERSION,
            "kind": KIND,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cluster":
        """
        Build a cluster from its API manifest form.

        Raises:
            ValueError: If required fields are missing or the spec is invalid
        """
        metadata = data.get("metadata") or {}
        if not metadata.get("name"):
            raise ValueError("Cluster manifest must set metadata.name")

        conditions = [
            ClusterCondition(
                type=c["type"],
                status=ConditionStatus(c["status"]),
                reason=c.get("reason", ""),
                message=c.get("message", ""),
                last_transition_time=c.get("lastTransitionTime"),
            )
            for c in (data.get("status") or {}).get("conditions", [])
        ]

        return cls(
            namespace=metadata.get("namespace", "default"),
            name=metadata["name"],
            uid=metadata.get("uid", ""),
            spec=ClusterSpec.from_dict(data.get("spec") or {}),
            conditions=conditions,
        )

    @classmethod
    def from_yaml(cls, text: str) -> "Cluster":
        """Load a cluster from a YAML manifest."""
        data = yaml.safe_load(text)
        if not isinstance(data, dict):
            raise ValueError("Cluster manifest must be a mapping")
        return cls.from_dict(data)
