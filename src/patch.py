"""
Patch calculation for managed objects.

Decides whether a mutated object differs from the live one in a way the
operator cares about. The comparison is three-way: the last-applied
snapshot stamped on the live object (what the operator wrote last time),
the mutated object (what the operator wants now) and the live object
(what the server currently holds). Fields the server added on its own are
not treated as drift, and fields dropped from the desired state since the
last apply are reported as deletions.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from errors import DiffError
from objects import ManagedObject

logger = logging.getLogger(__name__)

LAST_APPLIED_ANNOTATION = "crdb.io/last-applied"

# Ignored for every kind: the operator never owns the status subresource
DEFAULT_IGNORED_PATHS: Tuple[str, ...] = ("status",)

# Metadata the server manages; never part of a last-applied snapshot
SERVER_MANAGED_PATHS: Tuple[str, ...] = (
    "metadata.resourceVersion",
    "metadata.uid",
    "metadata.creationTimestamp",
    "metadata.generation",
    "metadata.managedFields",
)

# The API server fills in type metadata and status on claim templates
STATEFULSET_IGNORED_PATHS: Tuple[str, ...] = (
    "spec.volumeClaimTemplates.*.apiVersion",
    "spec.volumeClaimTemplates.*.kind",
    "spec.volumeClaimTemplates.*.status",
)


def delete_path(data: Any, path: str) -> None:
    """
    Delete a dotted path from a nested dict in place.

    A ``*`` segment matches every element of a list or every value of a
    map. Missing segments are ignored.
    """
    _delete_parts(data, path.split("."))


def _delete_parts(data: Any, parts: List[str]) -> None:
    head, rest = parts[0], parts[1:]

    if head == "*":
        if isinstance(data, list):
            children = list(data)
        elif isinstance(data, dict):
            children = list(data.values())
        else:
            return
        if not rest:
            data.clear()
            return
        for child in children:
            _delete_parts(child, rest)
        return

    if not isinstance(data, dict) or head not in data:
        return
    if rest:
        _delete_parts(data[head], rest)
    else:
        del data[head]


class DiffPolicy:
    """Field paths to ignore when comparing objects, keyed by kind."""

    def __init__(
        self,
        defaults: Iterable[str] = DEFAULT_IGNORED_PATHS,
        kinds: Optional[Dict[str, Iterable[str]]] = None,
    ):
        self._defaults: Tuple[str, ...] = tuple(defaults)
        self._kinds: Dict[str, Tuple[str, ...]] = {
            kind: tuple(paths) for kind, paths in (kinds or {}).items()
        }

    @classmethod
    def default(cls) -> "DiffPolicy":
        return cls(kinds={"StatefulSet": STATEFULSET_IGNORED_PATHS})

    def register(self, kind: str, *paths: str) -> None:
        """Add ignored paths for a kind."""
        existing = self._kinds.get(kind, ())
        self._kinds[kind] = existing + tuple(p for p in paths if p not in existing)

    def ignored_paths(self, kind: str) -> Tuple[str, ...]:
        return self._defaults + self._kinds.get(kind, ())

    def kinds(self) -> List[str]:
        return list(self._kinds.keys())


def _to_json_compatible(data: Dict[str, Any], what: str) -> Dict[str, Any]:
    try:
        return json.loads(json.dumps(data, sort_keys=True))
    except (TypeError, ValueError) as e:
        raise DiffError(f"cannot compare {what}: {e}") from e


class Annotator:
    """Reads and writes the last-applied snapshot annotation."""

    def __init__(self, annotation_key: str = LAST_APPLIED_ANNOTATION):
        self.annotation_key = annotation_key

    def snapshot(self, obj: ManagedObject) -> Dict[str, Any]:
        """The object as it would be recorded in the annotation."""
        data = obj.to_dict()
        data["metadata"]["annotations"].pop(self.annotation_key, None)
        for path in SERVER_MANAGED_PATHS + DEFAULT_IGNORED_PATHS:
            delete_path(data, path)
        return data

    def set_last_applied(self, obj: ManagedObject) -> None:
        data = _to_json_compatible(self.snapshot(obj), f"{obj.kind} {obj.key}")
        obj.annotations[self.annotation_key] = json.dumps(
            data, sort_keys=True, separators=(",", ":")
        )

    def get_last_applied(self, obj: ManagedObject) -> Optional[Dict[str, Any]]:
        """
        Return the parsed snapshot, or None when the object carries none.

        Raises:
            DiffError: If the annotation is not valid JSON
        """
        raw = obj.annotations.get(self.annotation_key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise DiffError(
                f"malformed {self.annotation_key} annotation: {e}",
                kind=obj.kind,
                key=obj.key,
                stage="diff",
            ) from e
        if not isinstance(data, dict):
            raise DiffError(
                f"{self.annotation_key} annotation is not an object",
                kind=obj.kind,
                key=obj.key,
                stage="diff",
            )
        return data


@dataclass
class PatchResult:
    """Fields that would have to be written to reach the desired object."""

    patch: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.patch


def _matches(desired: Any, live: Any) -> bool:
    """True when ``live`` holds everything ``desired`` sets."""
    if isinstance(desired, dict):
        return isinstance(live, dict) and all(
            k in live and _matches(v, live[k]) for k, v in desired.items()
        )
    if isinstance(desired, list):
        return (
            isinstance(live, list)
            and len(desired) == len(live)
            and all(_matches(d, actual) for d, actual in zip(desired, live))
        )
    return desired == live


def three_way_patch(
    original: Optional[Dict[str, Any]],
    modified: Dict[str, Any],
    current: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Compute a merge patch taking ``current`` to ``modified``.

    Keys only ``current`` has are left alone unless ``original`` shows the
    operator set them before, in which case they are deleted (``None``).
    A value that differs from ``current`` but that ``original`` already
    records is left alone: the server stored it in an equivalent form.
    """
    original = original if isinstance(original, dict) else {}
    patch: Dict[str, Any] = {}

    for key, value in modified.items():
        if key not in current:
            patch[key] = value
        elif isinstance(value, dict) and isinstance(current[key], dict):
            sub = three_way_patch(original.get(key), value, current[key])
            if sub:
                patch[key] = sub
        elif not _matches(value, current[key]) and original.get(key) != value:
            patch[key] = value

    for key in original:
        if key not in modified and key in current:
            patch[key] = None

    return patch


class PatchMaker:
    """Computes patches between a live object and its mutated copy."""

    def __init__(self, annotator: Optional[Annotator] = None):
        self.annotator = annotator or Annotator()

    def calculate(
        self,
        current: ManagedObject,
        modified: ManagedObject,
        ignore_paths: Iterable[str] = DEFAULT_IGNORED_PATHS,
    ) -> PatchResult:
        """
        Compare the pre-mutation object with the mutated one.

        Raises:
            DiffError: If either object holds values that cannot be compared
        """
        label = f"{modified.kind} {modified.key}"
        original = self.annotator.get_last_applied(current)
        current_data = _to_json_compatible(current.to_dict(), label)
        modified_data = _to_json_compatible(modified.to_dict(), label)
        original_data = copy.deepcopy(original) if original is not None else None

        strip = list(SERVER_MANAGED_PATHS) + list(ignore_paths)
        for data in (current_data, modified_data, original_data):
            if data is None:
                continue
            data.get("metadata", {}).get("annotations", {}).pop(
                self.annotator.annotation_key, None
            )
            for path in strip:
                delete_path(data, path)

        result = PatchResult(
            three_way_patch(original_data, modified_data, current_data)
        )
        if not result.is_empty:
            logger.debug(f"Patch for {label}: {result.patch}")
        return result
