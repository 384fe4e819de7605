"""Unit tests for patch.py - Diff policy, annotations and patch calculation."""

import json

import pytest

from errors import DiffError
from objects import ManagedObject
from patch import (
    DEFAULT_IGNORED_PATHS,
    LAST_APPLIED_ANNOTATION,
    STATEFULSET_IGNORED_PATHS,
    Annotator,
    DiffPolicy,
    PatchMaker,
    delete_path,
    three_way_patch,
)


def make_service(**spec):
    return ManagedObject(
        kind="Service",
        name="crdb",
        namespace="db",
        labels={"app": "crdb"},
        spec=dict(spec),
    )


# ==================== delete_path tests ====================


class TestDeletePath:
    """Tests for delete_path."""

    def test_simple(self):
        data = {"a": {"b": 1, "c": 2}}
        delete_path(data, "a.b")
        assert data == {"a": {"c": 2}}

    def test_missing_is_ignored(self):
        data = {"a": {"b": 1}}
        delete_path(data, "a.x.y")
        delete_path(data, "z")
        assert data == {"a": {"b": 1}}

    def test_wildcard_over_list(self):
        data = {"items": [{"kind": "A", "keep": 1}, {"kind": "B", "keep": 2}]}
        delete_path(data, "items.*.kind")
        assert data == {"items": [{"keep": 1}, {"keep": 2}]}

    def test_wildcard_over_map(self):
        data = {"m": {"x": {"s": 1, "t": 2}, "y": {"s": 3}}}
        delete_path(data, "m.*.s")
        assert data == {"m": {"x": {"t": 2}, "y": {}}}

    def test_trailing_wildcard_clears(self):
        data = {"m": {"x": 1, "y": 2}, "l": [1, 2]}
        delete_path(data, "m.*")
        delete_path(data, "l.*")
        assert data == {"m": {}, "l": []}

    def test_wildcard_over_scalar(self):
        data = {"a": 1}
        delete_path(data, "a.*.b")
        assert data == {"a": 1}


# ==================== DiffPolicy tests ====================


class TestDiffPolicy:
    """Tests for DiffPolicy."""

    def test_default_ignores_status_for_every_kind(self):
        policy = DiffPolicy.default()
        assert policy.ignored_paths("Service") == DEFAULT_IGNORED_PATHS
        assert policy.ignored_paths("Anything") == ("status",)

    def test_statefulset_extras(self):
        paths = DiffPolicy.default().ignored_paths("StatefulSet")
        assert paths == DEFAULT_IGNORED_PATHS + STATEFULSET_IGNORED_PATHS
        assert "spec.volumeClaimTemplates.*.apiVersion" in paths
        assert "spec.volumeClaimTemplates.*.kind" in paths
        assert "spec.volumeClaimTemplates.*.status" in paths

    def test_register(self):
        policy = DiffPolicy()
        policy.register("Service", "spec.clusterIP")
        policy.register("Service", "spec.clusterIP", "spec.clusterIPs")
        assert policy.ignored_paths("Service") == (
            "status",
            "spec.clusterIP",
            "spec.clusterIPs",
        )
        assert policy.kinds() == ["Service"]

    def test_instances_are_independent(self):
        a = DiffPolicy.default()
        b = DiffPolicy.default()
        a.register("Service", "spec.clusterIP")
        assert b.ignored_paths("Service") == ("status",)


# ==================== Annotator tests ====================


class TestAnnotator:
    """Tests for the last-applied annotation."""

    def test_round_trip(self):
        annotator = Annotator()
        obj = make_service(type="ClusterIP")
        annotator.set_last_applied(obj)
        assert LAST_APPLIED_ANNOTATION in obj.annotations
        assert annotator.get_last_applied(obj) == annotator.snapshot(obj)

    def test_snapshot_excludes_server_fields(self):
        obj = make_service(type="ClusterIP")
        obj.resource_version = "7"
        obj.uid = "u-1"
        obj.status = {"loadBalancer": {}}
        obj.annotations[LAST_APPLIED_ANNOTATION] = "{}"
        snapshot = Annotator().snapshot(obj)
        assert "resourceVersion" not in snapshot["metadata"]
        assert "uid" not in snapshot["metadata"]
        assert "status" not in snapshot
        assert LAST_APPLIED_ANNOTATION not in snapshot["metadata"]["annotations"]

    def test_compact_sorted_json(self):
        obj = make_service(b=1, a=2)
        Annotator().set_last_applied(obj)
        raw = obj.annotations[LAST_APPLIED_ANNOTATION]
        assert ", " not in raw
        assert raw == json.dumps(json.loads(raw), sort_keys=True, separators=(",", ":"))

    def test_custom_key(self):
        annotator = Annotator("example.com/applied")
        obj = make_service()
        annotator.set_last_applied(obj)
        assert "example.com/applied" in obj.annotations
        assert LAST_APPLIED_ANNOTATION not in obj.annotations

    def test_missing(self):
        assert Annotator().get_last_applied(make_service()) is None

    def test_malformed(self):
        obj = make_service()
        obj.annotations[LAST_APPLIED_ANNOTATION] = "{not json"
        with pytest.raises(DiffError, match="malformed") as exc_info:
            Annotator().get_last_applied(obj)
        assert exc_info.value.stage == "diff"
        assert exc_info.value.kind == "Service"

    def test_not_an_object(self):
        obj = make_service()
        obj.annotations[LAST_APPLIED_ANNOTATION] = "[1, 2]"
        with pytest.raises(DiffError, match="not an object"):
            Annotator().get_last_applied(obj)

    def test_unserializable(self):
        obj = make_service(when=object())
        with pytest.raises(DiffError, match="cannot compare"):
            Annotator().set_last_applied(obj)


# ==================== three_way_patch tests ====================


class TestThreeWayPatch:
    """Tests for three_way_patch."""

    def test_identical(self):
        data = {"spec": {"a": 1}}
        assert three_way_patch(data, data, data) == {}

    def test_changed_value(self):
        assert three_way_patch(None, {"a": 2}, {"a": 1}) == {"a": 2}

    def test_added_key(self):
        assert three_way_patch(None, {"a": 1, "b": 2}, {"a": 1}) == {"b": 2}

    def test_server_added_key_tolerated(self):
        assert three_way_patch({"a": 1}, {"a": 1}, {"a": 1, "server": "x"}) == {}

    def test_deleted_key(self):
        patch = three_way_patch({"a": 1, "b": 2}, {"a": 1}, {"a": 1, "b": 2})
        assert patch == {"b": None}

    def test_nested(self):
        patch = three_way_patch(
            {"spec": {"a": 1}},
            {"spec": {"a": 2}},
            {"spec": {"a": 1, "defaulted": True}},
        )
        assert patch == {"spec": {"a": 2}}

    def test_list_with_server_defaults(self):
        modified = {"ports": [{"port": 1}]}
        current = {"ports": [{"port": 1, "protocol": "TCP"}]}
        assert three_way_patch(None, modified, current) == {}

    def test_list_length_change(self):
        modified = {"ports": [{"port": 1}, {"port": 2}]}
        current = {"ports": [{"port": 1}]}
        assert three_way_patch(None, modified, current) == modified

    def test_type_change(self):
        assert three_way_patch(None, {"a": {"b": 1}}, {"a": "x"}) == {"a": {"b": 1}}

    def test_normalized_value_already_applied(self):
        patch = three_way_patch(
            {"spec": {"cpu": "1000m"}},
            {"spec": {"cpu": "1000m"}},
            {"spec": {"cpu": "1"}},
        )
        assert patch == {}

    def test_normalized_value_with_new_desired(self):
        patch = three_way_patch(
            {"spec": {"cpu": "1000m"}},
            {"spec": {"cpu": "2000m"}},
            {"spec": {"cpu": "1"}},
        )
        assert patch == {"spec": {"cpu": "2000m"}}

    def test_removed_field_restored(self):
        patch = three_way_patch({"a": 1, "b": 2}, {"a": 1, "b": 2}, {"a": 1})
        assert patch == {"b": 2}


# ==================== PatchMaker tests ====================


class TestPatchMaker:
    """Tests for PatchMaker.calculate."""

    @pytest.fixture
    def maker(self):
        return PatchMaker()

    @pytest.fixture
    def live(self):
        obj = make_service(type="ClusterIP", ports=[{"port": 80}])
        Annotator().set_last_applied(obj)
        obj.resource_version = "3"
        obj.uid = "u-1"
        return obj

    def test_unchanged(self, maker, live):
        assert maker.calculate(live, live.deep_copy()).is_empty

    def test_spec_change(self, maker, live):
        modified = live.deep_copy()
        modified.spec["type"] = "NodePort"
        result = maker.calculate(live, modified)
        assert result.patch == {"spec": {"type": "NodePort"}}

    def test_status_only_change_ignored(self, maker, live):
        modified = live.deep_copy()
        modified.status = {"loadBalancer": {"ingress": [{"ip": "1.2.3.4"}]}}
        assert maker.calculate(live, modified).is_empty

    def test_resource_version_ignored(self, maker, live):
        modified = live.deep_copy()
        modified.resource_version = "4"
        assert maker.calculate(live, modified).is_empty

    def test_annotation_not_compared(self, maker, live):
        modified = live.deep_copy()
        modified.annotations[LAST_APPLIED_ANNOTATION] = "{}"
        assert maker.calculate(live, modified).is_empty

    def test_label_change(self, maker, live):
        modified = live.deep_copy()
        modified.labels["team"] = "storage"
        result = maker.calculate(live, modified)
        assert result.patch == {"metadata": {"labels": {"team": "storage"}}}

    def test_label_removed_since_last_apply(self, maker, live):
        modified = live.deep_copy()
        del modified.labels["app"]
        result = maker.calculate(live, modified)
        assert result.patch == {"metadata": {"labels": {"app": None}}}

    def test_ignore_paths(self, maker, live):
        modified = live.deep_copy()
        modified.spec["clusterIP"] = "10.0.0.1"
        assert not maker.calculate(live, modified).is_empty
        assert maker.calculate(
            live, modified, ignore_paths=("status", "spec.clusterIP")
        ).is_empty

    def test_without_annotation(self, maker):
        live = make_service(type="ClusterIP")
        modified = live.deep_copy()
        assert maker.calculate(live, modified).is_empty

    def test_malformed_annotation(self, maker, live):
        live.annotations[LAST_APPLIED_ANNOTATION] = "oops"
        with pytest.raises(DiffError):
            maker.calculate(live, live.deep_copy())

    def test_statefulset_claim_template_defaults(self, maker):
        desired = ManagedObject(
            kind="StatefulSet",
            name="crdb",
            namespace="db",
            api_version="apps/v1",
            spec={"volumeClaimTemplates": [{"metadata": {"name": "datadir"}}]},
        )
        live = desired.deep_copy()
        live.spec["volumeClaimTemplates"][0].update(
            {"apiVersion": "v1", "kind": "PersistentVolumeClaim", "status": {}}
        )
        result = maker.calculate(
            live,
            desired,
            DiffPolicy.default().ignored_paths("StatefulSet"),
        )
        assert result.is_empty

    def test_server_normalized_value_not_rewritten(self, maker):
        live = make_service(type="ClusterIP", cpu="1000m")
        Annotator().set_last_applied(live)
        live.spec["cpu"] = "1"
        modified = live.deep_copy()
        modified.spec["cpu"] = "1000m"

        assert maker.calculate(live, modified).is_empty
