"""
Reconcile Engine - create-or-update for one managed object.

Given a builder, fetch the live object, decide between create, update and
no-op, and perform at most one write. Writes are guarded by the
last-applied annotation so that repeated passes over an unchanged desired
state converge to zero writes.
"""

import logging
from typing import Any, NoReturn, Optional

from builders import Builder
from config import EngineConfig
from errors import (
    ConflictError,
    DiffError,
    IdentityMutationError,
    NotFoundError,
    StoreError,
)
from events import EventBus, EventType, ReconcileEvent
from objects import ManagedObject, ObjectKey
from patch import Annotator, DiffPolicy, PatchMaker
from store import ObjectStore

logger = logging.getLogger(__name__)


class ReconcileEngine:
    """
    Drives one managed object toward the state its builder describes.

    Collaborators are passed in rather than shared globally, so independent
    engines can run side by side (one per test, one per store).
    """

    def __init__(
        self,
        store: ObjectStore,
        annotator: Optional[Annotator] = None,
        patch_maker: Optional[PatchMaker] = None,
        policy: Optional[DiffPolicy] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.annotator = annotator or Annotator()
        self.patch_maker = patch_maker or PatchMaker(self.annotator)
        self.policy = policy or DiffPolicy.default()
        self._event_bus = event_bus

    @classmethod
    def from_config(
        cls,
        store: ObjectStore,
        config: Optional[EngineConfig] = None,
        event_bus: Optional[EventBus] = None,
    ) -> "ReconcileEngine":
        config = config or EngineConfig()
        annotator = Annotator(config.last_applied_annotation)
        return cls(
            store,
            annotator=annotator,
            patch_maker=PatchMaker(annotator),
            policy=DiffPolicy.default(),
            event_bus=event_bus,
        )

    async def reconcile(self, builder: Builder, owner: Any = None) -> bool:
        """
        Create or update the object described by ``builder``.

        Args:
            builder: Builder for the managed object
            owner: Optional owner set as the object's controller reference

        Returns:
            True if the object was created or updated, False if it already
            matched and nothing was written.

        Raises:
            IdentityMutationError: If the builder changed namespace/name
            DiffError: If the patch could not be computed
            ConflictError: If the object changed since it was fetched
            StoreError: On any other object store failure
        """
        obj = builder.placeholder()
        kind, key = obj.kind, obj.key

        try:
            obj = await self.store.get(kind, key)
        except NotFoundError:
            await self._create(builder, obj, key, owner)
            return True
        except StoreError as e:
            self._raise_store_error(e, kind, key, "get")

        existing = obj.deep_copy()
        self._mutate(builder, obj, key, owner)

        try:
            result = self.patch_maker.calculate(
                existing, obj, self.policy.ignored_paths(kind)
            )
        except DiffError as e:
            e.kind = e.kind or kind
            e.key = e.key or key
            e.stage = e.stage or "diff"
            raise

        if result.is_empty:
            logger.debug(f"{kind} {key} is up to date")
            return False

        self.annotator.set_last_applied(obj)
        try:
            await self.store.update(obj)
        except StoreError as e:
            self._raise_store_error(e, kind, key, "update")

        logger.info(f"Updated {kind} {key}")
        await self._publish(EventType.UPDATED, obj, result.patch)
        return True

    async def _create(
        self, builder: Builder, obj: ManagedObject, key: ObjectKey, owner: Any
    ) -> None:
        self._mutate(builder, obj, key, owner)
        self.annotator.set_last_applied(obj)
        try:
            await self.store.create(obj)
        except StoreError as e:
            self._raise_store_error(e, obj.kind, key, "create")

        logger.info(f"Created {obj.kind} {key}")
        await self._publish(EventType.CREATED, obj)

    def _mutate(
        self, builder: Builder, obj: ManagedObject, key: ObjectKey, owner: Any
    ) -> None:
        builder.build(obj)

        if obj.key != key:
            raise IdentityMutationError(
                f"builder for {obj.kind} cannot change the object's identity "
                f"from {key} to {obj.key}",
                kind=obj.kind,
                key=key,
                stage="build",
            )

        if owner is not None:
            obj.set_controller_reference(owner)

    def _raise_store_error(
        self, err: StoreError, kind: str, key: ObjectKey, stage: str
    ) -> NoReturn:
        if isinstance(err, ConflictError):
            raise err
        raise StoreError(
            f"failed to {stage} {kind} {key}: {err.message}",
            kind=kind,
            key=key,
            stage=stage,
            status=err.status,
        ) from err

    async def _publish(self, event_type: EventType, obj: ManagedObject, patch=None):
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            ReconcileEvent(
                event_type=event_type,
                kind=obj.kind,
                namespace=obj.namespace,
                name=obj.name,
                details={"patch": patch} if patch else {},
            )
        )
