"""
Builders for the objects a cluster owns.

A builder knows the identity of one managed object (its placeholder) and
how to mutate any object of that identity into its desired state. Builders
are stateless apart from the cluster they were created for, so a fresh
set is created for every pass.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from cluster import Cluster
from objects import ManagedObject

CONTAINER_NAME = "db"
DATA_DIR_VOLUME = "datadir"


class Builder(ABC):
    """Produces one managed object's desired state from a cluster."""

    def __init__(self, cluster: Cluster, selector: Optional[Dict[str, str]] = None):
        self.cluster = cluster
        self.selector = selector if selector is not None else cluster.selector()

    @property
    @abstractmethod
    def resource_kind(self) -> str:
        """Kind of the object this builder produces (e.g. 'Service')."""
        pass

    @property
    def api_version(self) -> str:
        return "v1"

    @abstractmethod
    def resource_name(self) -> str:
        """Name of the object this builder produces."""
        pass

    def placeholder(self) -> ManagedObject:
        """An empty object carrying only the identity to fetch."""
        return ManagedObject(
            kind=self.resource_kind,
            api_version=self.api_version,
            name=self.resource_name(),
            namespace=self.cluster.namespace,
        )

    @abstractmethod
    def build(self, obj: ManagedObject) -> None:
        """Mutate ``obj`` in place into the desired state."""
        pass

    def produce_desired(self) -> ManagedObject:
        obj = self.placeholder()
        self.build(obj)
        return obj

    def _apply_labels(self, obj: ManagedObject) -> None:
        obj.labels.update(self.cluster.labels())


def _service_port(name: str, port: int) -> Dict[str, Any]:
    return {"name": name, "port": port, "targetPort": port, "protocol": "TCP"}


class DiscoveryServiceBuilder(Builder):
    """Headless service the nodes use to find each other."""

    resource_kind = "Service"

    def resource_name(self) -> str:
        return self.cluster.name

    def build(self, obj: ManagedObject) -> None:
        spec = self.cluster.spec
        self._apply_labels(obj)
        obj.annotations.update(
            {
                "prometheus.io/scrape": "true",
                "prometheus.io/path": "_status/vars",
                "prometheus.io/port": str(spec.http_port),
            }
        )
        obj.spec.update(
            {
                "clusterIP": "None",
                "publishNotReadyAddresses": True,
                "ports": [
                    _service_port("grpc", spec.grpc_port),
                    _service_port("http", spec.http_port),
                ],
                "selector": dict(self.selector),
            }
        )


class PublicServiceBuilder(Builder):
    """Service clients connect through."""

    resource_kind = "Service"

    def resource_name(self) -> str:
        return f"{self.cluster.name}-public"

    def build(self, obj: ManagedObject) -> None:
        spec = self.cluster.spec
        self._apply_labels(obj)
        ports = [
            _service_port("grpc", spec.grpc_port),
            _service_port("http", spec.http_port),
        ]
        if spec.sql_port != spec.grpc_port:
            ports.append(_service_port("sql", spec.sql_port))
        obj.spec.update(
            {
                "type": "ClusterIP",
                "ports": ports,
                "selector": dict(self.selector),
            }
        )


class StatefulSetBuilder(Builder):
    """The database nodes."""

    resource_kind = "StatefulSet"

    @property
    def api_version(self) -> str:
        return "apps/v1"

    def resource_name(self) -> str:
        return self.cluster.name

    def build(self, obj: ManagedObject) -> None:
        self._apply_labels(obj)
        obj.spec.update(
            {
                "serviceName": self.cluster.name,
                "replicas": self.cluster.spec.nodes,
                "podManagementPolicy": "Parallel",
                "updateStrategy": {"type": "RollingUpdate"},
                "selector": {"matchLabels": dict(self.selector)},
                "template": self._pod_template(),
                "volumeClaimTemplates": [self._data_claim()],
            }
        )

    def _pod_template(self) -> Dict[str, Any]:
        return {
            "metadata": {"labels": self.cluster.labels()},
            "spec": {
                "terminationGracePeriodSeconds": 60,
                "containers": [self._container()],
            },
        }

    def _container(self) -> Dict[str, Any]:
        spec = self.cluster.spec
        return {
            "name": CONTAINER_NAME,
            "image": spec.image,
            "imagePullPolicy": "IfNotPresent",
            "command": ["/bin/bash", "-ecx", self._start_command()],
            "ports": [
                {"name": "grpc", "containerPort": spec.grpc_port, "protocol": "TCP"},
                {"name": "http", "containerPort": spec.http_port, "protocol": "TCP"},
            ],
            "resources": dict(spec.resources),
            "volumeMounts": [
                {"name": DATA_DIR_VOLUME, "mountPath": "/cockroach/cockroach-data/"}
            ],
        }

    def _start_command(self) -> str:
        spec = self.cluster.spec
        name = self.cluster.name
        joins = ",".join(
            f"{name}-{i}.{name}.{self.cluster.namespace}:{spec.grpc_port}"
            for i in range(min(spec.nodes, 3))
        )
        args: List[str] = [
            "exec /cockroach/cockroach.sh start",
            f"--join={joins}",
            "--advertise-host=$(hostname -f)",
            f"--listen-addr=:{spec.grpc_port}",
            f"--sql-addr=:{spec.sql_port}",
            f"--http-addr=:{spec.http_port}",
            "--logtostderr=INFO",
            "--insecure",
        ]
        return " ".join(args)

    def _data_claim(self) -> Dict[str, Any]:
        return {
            "metadata": {"name": DATA_DIR_VOLUME},
            "spec": {
                "accessModes": ["ReadWriteOnce"],
                "resources": {"requests": {"storage": self.cluster.spec.storage_size}},
            },
        }


class PdbBuilder(Builder):
    """Pod disruption budget limiting voluntary node loss."""

    resource_kind = "PodDisruptionBudget"

    @property
    def api_version(self) -> str:
        return "policy/v1"

    def resource_name(self) -> str:
        return self.cluster.name

    def build(self, obj: ManagedObject) -> None:
        self._apply_labels(obj)
        obj.spec.update(
            {
                "maxUnavailable": self.cluster.spec.max_unavailable,
                "selector": {"matchLabels": dict(self.selector)},
            }
        )
