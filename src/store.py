"""
Object Store - interface to wherever managed objects live.

The reconcile engine only needs get/create/update by kind and key. The
in-memory store implements the same optimistic concurrency rules as the
Kubernetes API server (resourceVersion checks) and is what tests and local
runs use; KubeObjectStore in kube.py talks to a real API server.
"""

import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from errors import ConflictError, NotFoundError
from objects import ManagedObject, ObjectKey

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Abstract object store."""

    @abstractmethod
    async def get(self, kind: str, key: ObjectKey) -> ManagedObject:
        """
        Fetch the live object.

        Raises:
            NotFoundError: If no object of this kind exists at key
            StoreError: On any other failure
        """
        pass

    @abstractmethod
    async def create(self, obj: ManagedObject) -> ManagedObject:
        """
        Create the object and return it as stored.

        Raises:
            ConflictError: If an object already exists at its key
            StoreError: On any other failure
        """
        pass

    @abstractmethod
    async def update(self, obj: ManagedObject) -> ManagedObject:
        """
        Replace the object and return it as stored.

        Raises:
            ConflictError: If obj.resource_version is stale
            NotFoundError: If the object no longer exists
            StoreError: On any other failure
        """
        pass


class InMemoryObjectStore(ObjectStore):
    """
    Dict-backed object store.

    Objects are deep-copied on the way in and out, so callers never share
    state with the store. Every write bumps resourceVersion.
    """

    def __init__(self):
        self._objects: Dict[Tuple[str, ObjectKey], ManagedObject] = {}
        self._versions = itertools.count(1)
        # (operation, kind, key) for every successful write
        self.writes: List[Tuple[str, str, ObjectKey]] = []

    async def get(self, kind: str, key: ObjectKey) -> ManagedObject:
        obj = self._objects.get((kind, key))
        if obj is None:
            raise NotFoundError(
                f"{kind} {key} not found", kind=kind, key=key, stage="get", status=404
            )
        return obj.deep_copy()

    async def create(self, obj: ManagedObject) -> ManagedObject:
        index = (obj.kind, obj.key)
        if index in self._objects:
            raise ConflictError(
                f"{obj.kind} {obj.key} already exists",
                kind=obj.kind,
                key=obj.key,
                stage="create",
                status=409,
            )

        stored = obj.deep_copy()
        stored.uid = str(uuid.uuid4())
        stored.resource_version = str(next(self._versions))
        self._objects[index] = stored
        self.writes.append(("create", obj.kind, obj.key))
        logger.debug(
            f"Created {obj.kind} {obj.key} at version {stored.resource_version}"
        )
        return stored.deep_copy()

    async def update(self, obj: ManagedObject) -> ManagedObject:
        index = (obj.kind, obj.key)
        existing = self._objects.get(index)
        if existing is None:
            raise NotFoundError(
                f"{obj.kind} {obj.key} not found",
                kind=obj.kind,
                key=obj.key,
                stage="update",
                status=404,
            )
        if obj.resource_version != existing.resource_version:
            raise ConflictError(
                f"{obj.kind} {obj.key} was modified: have version "
                f"{obj.resource_version}, stored version {existing.resource_version}",
                kind=obj.kind,
                key=obj.key,
                stage="update",
                status=409,
            )

        stored = obj.deep_copy()
        stored.uid = existing.uid
        # status is a subresource; a main-resource update cannot change it
        stored.status = existing.status
        stored.resource_version = str(next(self._versions))
        self._objects[index] = stored
        self.writes.append(("update", obj.kind, obj.key))
        logger.debug(
            f"Updated {obj.kind} {obj.key} to version {stored.resource_version}"
        )
        return stored.deep_copy()

    def put(self, obj: ManagedObject) -> ManagedObject:
        """Store an object as-is, bypassing checks. Simulates external writers."""
        stored = obj.deep_copy()
        if stored.uid is None:
            stored.uid = str(uuid.uuid4())
        stored.resource_version = str(next(self._versions))
        self._objects[(obj.kind, obj.key)] = stored
        return stored.deep_copy()

    def list_objects(self, kind: str) -> List[ManagedObject]:
        return [o.deep_copy() for (k, _), o in self._objects.items() if k == kind]
