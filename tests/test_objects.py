"""Unit tests for objects.py - Managed object model."""

import pytest

from objects import ManagedObject, ObjectKey


class TestObjectKey:
    def test_str(self):
        assert str(ObjectKey("db", "crdb")) == "db/crdb"

    def test_hashable_and_equal(self):
        assert ObjectKey("db", "crdb") == ObjectKey("db", "crdb")
        assert len({ObjectKey("db", "crdb"), ObjectKey("db", "crdb")}) == 1


class TestManagedObject:
    """Tests for ManagedObject."""

    @pytest.fixture
    def obj(self):
        return ManagedObject(
            kind="Service",
            name="crdb",
            namespace="db",
            labels={"app": "crdb"},
            spec={"ports": [{"port": 26257}]},
        )

    def test_key(self, obj):
        assert obj.key == ObjectKey("db", "crdb")

    def test_deep_copy_is_independent(self, obj):
        copy = obj.deep_copy()
        copy.spec["ports"][0]["port"] = 1
        copy.labels["x"] = "y"
        assert obj.spec["ports"][0]["port"] == 26257
        assert "x" not in obj.labels

    def test_to_dict(self, obj):
        data = obj.to_dict()
        assert data == {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {
                "name": "crdb",
                "namespace": "db",
                "labels": {"app": "crdb"},
                "annotations": {},
                "ownerReferences": [],
            },
            "spec": {"ports": [{"port": 26257}]},
            "status": {},
        }

    def test_to_dict_server_fields(self, obj):
        obj.resource_version = "12"
        obj.uid = "abc"
        metadata = obj.to_dict()["metadata"]
        assert metadata["resourceVersion"] == "12"
        assert metadata["uid"] == "abc"

    def test_from_dict_round_trip(self, obj):
        obj.resource_version = "12"
        obj.status = {"ready": True}
        assert ManagedObject.from_dict(obj.to_dict()) == obj

    def test_from_dict_keeps_unmodelled_metadata(self):
        data = {
            "kind": "Service",
            "metadata": {
                "name": "a",
                "namespace": "b",
                "finalizers": ["example.com/protect"],
            },
        }
        obj = ManagedObject.from_dict(data)
        assert obj.extra_metadata == {"finalizers": ["example.com/protect"]}
        assert obj.to_dict()["metadata"]["finalizers"] == ["example.com/protect"]

    def test_from_dict_tolerates_nulls(self):
        obj = ManagedObject.from_dict(
            {
                "kind": "Service",
                "metadata": {"name": "a", "namespace": "b", "labels": None},
                "spec": None,
            }
        )
        assert obj.labels == {}
        assert obj.spec == {}
        assert obj.api_version == "v1"


class TestControllerReference:
    """Tests for set_controller_reference."""

    def test_sets_reference(self, cluster):
        obj = ManagedObject(kind="Service", name="crdb", namespace="db")
        obj.set_controller_reference(cluster)
        assert obj.owner_references == [cluster.owner_reference()]

    def test_idempotent(self, cluster):
        obj = ManagedObject(kind="Service", name="crdb", namespace="db")
        obj.set_controller_reference(cluster)
        obj.set_controller_reference(cluster)
        assert len(obj.owner_references) == 1

    def test_keeps_non_controller_references(self, cluster):
        other = {"kind": "ConfigMap", "name": "x", "uid": "other"}
        obj = ManagedObject(
            kind="Service", name="crdb", namespace="db", owner_references=[other]
        )
        obj.set_controller_reference(cluster)
        assert obj.owner_references == [other, cluster.owner_reference()]

    def test_refuses_second_controller(self, cluster):
        other = {"kind": "Other", "name": "x", "uid": "other", "controller": True}
        obj = ManagedObject(
            kind="Service", name="crdb", namespace="db", owner_references=[other]
        )
        with pytest.raises(ValueError, match="already controlled by Other x"):
            obj.set_controller_reference(cluster)
