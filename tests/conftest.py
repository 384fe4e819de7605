"""Pytest configuration and fixtures."""

import pytest

from cluster import Cluster, ClusterSpec
from conditions import ClusterCondition, ConditionStatus, ConditionType
from reconcile import ReconcileEngine
from store import InMemoryObjectStore


@pytest.fixture
def sample_spec():
    """Sample cluster spec in its API form."""
    return {
        "nodes": 3,
        "image": "cockroachdb/cockroach:v21.1.0",
        "grpcPort": 26258,
        "httpPort": 8080,
        "sqlPort": 26257,
        "storageSize": "10Gi",
        "additionalLabels": {"team": "storage"},
    }


@pytest.fixture
def sample_manifest(sample_spec):
    """Sample cluster manifest."""
    return {
        "apiVersion": "crdb.cockroachlabs.com/v1alpha1",
        "kind": "CrdbCluster",
        "metadata": {"name": "crdb", "namespace": "db", "uid": "cluster-uid-1"},
        "spec": sample_spec,
        "status": {
            "conditions": [{"type": "Initialized", "status": "False"}],
        },
    }


@pytest.fixture
def cluster():
    """An initialized three node cluster ready for deploy."""
    return Cluster(
        namespace="db",
        name="crdb",
        uid="cluster-uid-1",
        spec=ClusterSpec(nodes=3, image="cockroachdb/cockroach:v21.1.0"),
        conditions=[
            ClusterCondition(
                type=ConditionType.INITIALIZED, status=ConditionStatus.FALSE
            )
        ],
    )


@pytest.fixture
def store():
    """Empty in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def engine(store):
    """Reconcile engine over the in-memory store."""
    return ReconcileEngine(store)
