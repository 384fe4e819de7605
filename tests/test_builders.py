"""Unit tests for builders.py - Managed object builders."""

import pytest

from builders import (
    DiscoveryServiceBuilder,
    PdbBuilder,
    PublicServiceBuilder,
    StatefulSetBuilder,
)
from objects import ObjectKey


class TestPlaceholders:
    """Tests for builder identities."""

    @pytest.mark.parametrize(
        "builder_cls,kind,api_version,name",
        [
            (DiscoveryServiceBuilder, "Service", "v1", "crdb"),
            (PublicServiceBuilder, "Service", "v1", "crdb-public"),
            (StatefulSetBuilder, "StatefulSet", "apps/v1", "crdb"),
            (PdbBuilder, "PodDisruptionBudget", "policy/v1", "crdb"),
        ],
    )
    def test_placeholder(self, cluster, builder_cls, kind, api_version, name):
        obj = builder_cls(cluster).placeholder()
        assert obj.kind == kind
        assert obj.api_version == api_version
        assert obj.key == ObjectKey("db", name)
        assert obj.spec == {}
        assert obj.labels == {}

    def test_build_keeps_identity(self, cluster):
        builder = StatefulSetBuilder(cluster)
        obj = builder.produce_desired()
        assert obj.key == builder.placeholder().key


class TestDiscoveryServiceBuilder:
    def test_headless(self, cluster):
        obj = DiscoveryServiceBuilder(cluster).produce_desired()
        assert obj.spec["clusterIP"] == "None"
        assert obj.spec["publishNotReadyAddresses"] is True
        assert [p["name"] for p in obj.spec["ports"]] == ["grpc", "http"]
        assert obj.spec["selector"] == cluster.selector()
        assert obj.annotations["prometheus.io/port"] == "8080"
        assert obj.labels == cluster.labels()


class TestPublicServiceBuilder:
    def test_ports(self, cluster):
        obj = PublicServiceBuilder(cluster).produce_desired()
        assert obj.spec["type"] == "ClusterIP"
        assert [p["port"] for p in obj.spec["ports"]] == [26258, 8080, 26257]

    def test_sql_port_shared_with_grpc(self, cluster):
        cluster.spec.sql_port = cluster.spec.grpc_port
        obj = PublicServiceBuilder(cluster).produce_desired()
        assert [p["name"] for p in obj.spec["ports"]] == ["grpc", "http"]

    def test_custom_selector(self, cluster):
        obj = PublicServiceBuilder(cluster, selector={"a": "b"}).produce_desired()
        assert obj.spec["selector"] == {"a": "b"}


class TestStatefulSetBuilder:
    @pytest.fixture
    def obj(self, cluster):
        return StatefulSetBuilder(cluster).produce_desired()

    def test_spec(self, obj, cluster):
        assert obj.spec["replicas"] == 3
        assert obj.spec["serviceName"] == "crdb"
        assert obj.spec["selector"] == {"matchLabels": cluster.selector()}
        assert obj.spec["template"]["metadata"]["labels"] == cluster.labels()

    def test_container(self, obj):
        container = obj.spec["template"]["spec"]["containers"][0]
        assert container["name"] == "db"
        assert container["image"] == "cockroachdb/cockroach:v21.1.0"
        command = container["command"][-1]
        assert "--join=crdb-0.crdb.db:26258,crdb-1.crdb.db:26258" in command
        assert "--sql-addr=:26257" in command

    def test_join_list_capped_at_three(self, cluster):
        cluster.spec.nodes = 5
        obj = StatefulSetBuilder(cluster).produce_desired()
        command = obj.spec["template"]["spec"]["containers"][0]["command"][-1]
        assert "crdb-2.crdb.db" in command
        assert "crdb-3.crdb.db" not in command

    def test_volume_claim(self, obj):
        (claim,) = obj.spec["volumeClaimTemplates"]
        assert claim["metadata"]["name"] == "datadir"
        assert claim["spec"]["resources"]["requests"]["storage"] == "10Gi"

    def test_build_overwrites_drift(self, cluster):
        builder = StatefulSetBuilder(cluster)
        obj = builder.produce_desired()
        obj.spec["replicas"] = 9
        builder.build(obj)
        assert obj.spec["replicas"] == 3


class TestPdbBuilder:
    def test_spec(self, cluster):
        cluster.spec.max_unavailable = 2
        obj = PdbBuilder(cluster).produce_desired()
        assert obj.spec == {
            "maxUnavailable": 2,
            "selector": {"matchLabels": cluster.selector()},
        }
