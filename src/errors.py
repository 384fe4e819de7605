"""
Error taxonomy for the convergence engine.

Every error raised while reconciling a managed object carries the resource
kind, the object key and the stage it failed in, so the host loop can log
it and decide on backoff. Retry policy is entirely the caller's.
"""

from typing import Any, Optional


class ReconcileError(Exception):
    """Base class for errors raised while reconciling a managed object."""

    retryable = False

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        key: Any = None,
        stage: Optional[str] = None,
    ):
        self.message = message
        self.kind = kind
        self.key = key
        self.stage = stage
        super().__init__(message)


class StoreError(ReconcileError):
    """An object store request failed."""

    retryable = True

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        key: Any = None,
        stage: Optional[str] = None,
        status: Optional[int] = None,
    ):
        self.status = status
        super().__init__(message, kind=kind, key=key, stage=stage)


class NotFoundError(StoreError):
    """The requested object does not exist. Triggers the create path."""


class ConflictError(StoreError):
    """Optimistic concurrency failure: the write was based on a stale object."""


class IdentityMutationError(ReconcileError):
    """A builder changed the namespace/name of the object it was given."""


class DiffError(ReconcileError):
    """The patch between the live and desired object could not be computed."""


class StepError(ReconcileError):
    """A sequencer step failed. The original failure is the ``__cause__``."""

    def __init__(
        self,
        message: str,
        cause: BaseException,
        kind: Optional[str] = None,
        step: Optional[str] = None,
    ):
        self.cause = cause
        self.step = step
        super().__init__(
            message,
            kind=kind,
            key=getattr(cause, "key", None),
            stage=getattr(cause, "stage", None),
        )

    @property
    def retryable(self) -> bool:
        return is_retryable(self.cause)


def is_retryable(exc: BaseException) -> bool:
    """
    Decide whether re-running the pass may succeed without a code fix.

    Walks the ``__cause__`` chain and answers for the first ReconcileError
    found. Anything outside the taxonomy is treated as non-retryable.
    """
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ReconcileError) and not isinstance(
            current, StepError
        ):
            return current.retryable
        current = current.__cause__
    return False
