"""
Action Sequencer - ordered, single-write-per-pass reconciliation.

An action owns an ordered list of steps, one per managed object. Each pass
walks the list in order and stops at the first step that writes anything,
firing the loop canceller so the host loop re-runs the whole sequence
against fresh state. A pass that reaches the end without writing means the
cluster has converged for this action.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

from builders import Builder
from cluster import Cluster
from errors import StepError
from reconcile import ReconcileEngine

if TYPE_CHECKING:
    from plugins.base import ActionContext

logger = logging.getLogger(__name__)


class LoopCanceller:
    """
    One-shot signal telling the host loop to stop this pass and reschedule.

    It does not interrupt anything in flight; it records that a mutation
    happened. It may fire at most once per pass.
    """

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "") -> None:
        if self._cancelled:
            raise RuntimeError(
                f"loop already cancelled ({self._reason}); cannot cancel again "
                f"({reason})"
            )
        self._cancelled = True
        self._reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason


class StepOutcome(Enum):
    """What a single step did during a pass."""

    SKIPPED = "skipped"
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    FAILED = "failed"


@dataclass
class Step:
    """
    One managed object in an action's sequence.

    ``builder_factory`` is called with the cluster on every pass; ``guard``,
    when set, decides from the cluster whether the step applies at all.
    """

    builder_factory: Callable[[Cluster], Builder]
    name: str
    guard: Optional[Callable[[Cluster], bool]] = None


@dataclass
class StepResult:
    step: Step
    outcome: StepOutcome
    kind: Optional[str] = None
    error: Optional[Exception] = None


class ActionSequencer:
    """Runs an ordered list of steps, writing at most one object per pass."""

    def __init__(
        self,
        engine: ReconcileEngine,
        steps: Sequence[Step],
        set_owner: bool = True,
    ):
        self.engine = engine
        self.steps = list(steps)
        self.set_owner = set_owner

    async def act(self, ctx: "ActionContext", cluster: Cluster) -> List[StepResult]:
        """
        Run one pass over the steps.

        Args:
            ctx: Pass context carrying the loop canceller
            cluster: The owning cluster

        Returns:
            Results of the steps attempted in this pass, in order.

        Raises:
            StepError: If a step failed; the original error is its cause
        """
        results: List[StepResult] = []

        for step in self.steps:
            result = await self._run_step(step, cluster)
            results.append(result)

            if result.outcome is StepOutcome.FAILED:
                raise StepError(
                    f"failed to reconcile {step.name}: {result.error}",
                    cause=result.error,
                    kind=result.kind,
                    step=step.name,
                ) from result.error

            if result.outcome is StepOutcome.CHANGED:
                logger.debug(
                    f"Created/updated {step.name} for {cluster.object_key}, "
                    f"stopping request processing"
                )
                ctx.canceller.cancel(f"{step.name} changed")
                return results

        logger.debug(f"All {len(self.steps)} steps up to date for {cluster.object_key}")
        return results

    async def _run_step(self, step: Step, cluster: Cluster) -> StepResult:
        if step.guard is not None and not step.guard(cluster):
            logger.debug(f"Skipping {step.name} for {cluster.object_key}")
            return StepResult(step=step, outcome=StepOutcome.SKIPPED)

        kind = None
        try:
            builder = step.builder_factory(cluster)
            kind = builder.resource_kind
            changed = await self.engine.reconcile(
                builder, owner=cluster if self.set_owner else None
            )
        except Exception as e:
            return StepResult(step=step, outcome=StepOutcome.FAILED, kind=kind, error=e)

        outcome = StepOutcome.CHANGED if changed else StepOutcome.UNCHANGED
        return StepResult(step=step, outcome=outcome, kind=kind)
