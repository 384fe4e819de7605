"""
Operator Controller - Host loop driving the lifecycle actions.

Similar to Kubernetes controllers, repeatedly reconciles each cluster until
no action changes anything. Each pass runs the first registered action
that handles the cluster's conditions; a pass that writes an object ends
early and is immediately followed by a fresh pass, a pass that fails is
retried after exponential backoff.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from cluster import Cluster
from config import ControllerConfig
from errors import is_retryable
from events import EventBus, EventType, ReconcileEvent
from features import FeatureGate
from objects import ObjectKey
from plugins.actions.base import Action
from plugins.base import ActionContext, ActionType
from plugins.registry import ActionRegistry, get_registry
from reconcile import ReconcileEngine

logger = logging.getLogger(__name__)


@dataclass
class PassOutcome:
    """Result of one pass for one cluster."""

    cluster_key: ObjectKey
    action_type: Optional[ActionType] = None
    changed: bool = False
    error: Optional[Exception] = None
    # seconds until the next pass; 0 means immediately
    requeue_after: Optional[float] = None

    @property
    def converged(self) -> bool:
        return self.error is None and not self.changed


class Controller:
    """
    Main controller that runs passes for clusters.

    Passes for different clusters run in parallel, bounded by
    ``max_concurrent_reconciles``; passes for the same cluster never
    overlap.
    """

    def __init__(
        self,
        engine: ReconcileEngine,
        registry: Optional[ActionRegistry] = None,
        config: Optional[ControllerConfig] = None,
        feature_gate: Optional[FeatureGate] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.engine = engine
        self.registry = registry or get_registry()
        self.config = config or ControllerConfig()
        self.feature_gate = feature_gate or FeatureGate()
        self.semaphore = asyncio.Semaphore(self.config.max_concurrent_reconciles)
        self.running = False
        self._event_bus = event_bus
        self._actions: Optional[List[Action]] = None
        self._owner_locks: Dict[ObjectKey, asyncio.Lock] = {}
        self._retry_counts: Dict[ObjectKey, int] = {}
        # loop time before which a failed cluster is not retried
        self._not_before: Dict[ObjectKey, float] = {}

    @property
    def actions(self) -> List[Action]:
        if self._actions is None:
            self._actions = self.registry.create_actions(
                self.engine, self.feature_gate
            )
        return self._actions

    def select_action(self, cluster: Cluster) -> Optional[Action]:
        """Return the first action that handles the cluster's conditions."""
        for action in self.actions:
            if action.handles(cluster.conditions):
                return action
        return None

    def backoff_delay(self, retry_count: int) -> float:
        """Exponential backoff with jitter, capped at backoff_max_delay."""
        delay = min(
            self.config.backoff_base_delay * 2 ** min(retry_count, 10),
            self.config.backoff_max_delay,
        )
        jitter = 1 + (random.random() * 2 - 1) * self.config.backoff_jitter_factor
        return delay * jitter

    async def run_pass(self, cluster: Cluster) -> PassOutcome:
        """Run a single pass for a cluster."""
        lock = self._owner_locks.setdefault(cluster.object_key, asyncio.Lock())
        async with self.semaphore:
            async with lock:
                return await self._run_pass(cluster)

    async def _run_pass(self, cluster: Cluster) -> PassOutcome:
        key = cluster.object_key
        action = self.select_action(cluster)
        if action is None:
            logger.debug(f"No action handles the conditions of {key}")
            return PassOutcome(cluster_key=key)

        action_type = action.action_type
        ctx = ActionContext()
        logger.debug(f"Running {action_type.value} for {key} (pass {ctx.pass_id})")

        try:
            await action.act(ctx, cluster)
        except Exception as e:
            retries = self._retry_counts.get(key, 0)
            self._retry_counts[key] = retries + 1
            delay = self.backoff_delay(retries)
            logger.error(
                f"{action_type.value} failed for {key} "
                f"(retryable={is_retryable(e)}, retry in {delay:.0f}s): {e}",
                exc_info=not is_retryable(e),
            )
            cluster.status.record_failure(action_type.value, str(e))
            await self._publish(EventType.FAILED, cluster, str(e))
            return PassOutcome(
                cluster_key=key, action_type=action_type, error=e, requeue_after=delay
            )

        self._retry_counts.pop(key, None)
        cluster.status.clear_failure(action_type.value)
        cluster.status.operation_action = action_type.value

        if ctx.canceller.cancelled:
            logger.info(f"{action_type.value} changed {key}: {ctx.canceller.reason}")
            return PassOutcome(
                cluster_key=key, action_type=action_type, changed=True, requeue_after=0
            )

        await self._publish(EventType.CONVERGED, cluster, action_type.value)
        return PassOutcome(
            cluster_key=key,
            action_type=action_type,
            requeue_after=self.config.reconcile_interval,
        )

    async def converge(
        self, cluster: Cluster, max_passes: Optional[int] = None
    ) -> PassOutcome:
        """
        Re-run passes for a cluster until one makes no change or fails.

        Args:
            cluster: The cluster to reconcile
            max_passes: Upper bound on passes, defaults to config.max_passes

        Returns:
            The outcome of the last pass run.
        """
        if max_passes is None:
            max_passes = self.config.max_passes

        outcome = PassOutcome(cluster_key=cluster.object_key)
        for _ in range(max_passes):
            outcome = await self.run_pass(cluster)
            if not outcome.changed:
                return outcome

        logger.warning(
            f"{cluster.object_key} still changing after {max_passes} passes"
        )
        return outcome

    async def start(self, list_clusters: Callable[[], Awaitable[Iterable[Cluster]]]):
        """
        Run the reconciliation loop until stopped.

        A cluster whose last pass failed is skipped until its backoff delay
        has elapsed.

        Args:
            list_clusters: Coroutine function returning the clusters to
                reconcile on each cycle
        """
        logger.info("Starting operator controller")
        self.running = True

        while self.running:
            try:
                clusters = list(await list_clusters())
                self.forget(c.object_key for c in clusters)
                now = asyncio.get_running_loop().time()
                due = [c for c in clusters if self.is_due(c.object_key, now)]
                if due:
                    logger.info(f"Reconciling {len(due)} of {len(clusters)} clusters")
                    outcomes = await asyncio.gather(
                        *(self.converge(c) for c in due), return_exceptions=True
                    )
                    for cluster, outcome in zip(due, outcomes):
                        self._schedule(cluster.object_key, outcome)
                await asyncio.sleep(self.config.reconcile_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)
                await asyncio.sleep(10)  # Brief pause on error

    def is_due(self, key: ObjectKey, now: float) -> bool:
        """True unless the cluster is still backing off from a failure."""
        return now >= self._not_before.get(key, 0.0)

    def forget(self, live_keys: Iterable[ObjectKey]) -> None:
        """Drop per-cluster state for clusters that are no longer listed."""
        live = set(live_keys)
        for key in [k for k in self._owner_locks if k not in live]:
            if not self._owner_locks[key].locked():
                del self._owner_locks[key]
        for state in (self._retry_counts, self._not_before):
            for key in [k for k in state if k not in live]:
                del state[key]

    def _schedule(
        self, key: ObjectKey, outcome: Union[PassOutcome, BaseException]
    ) -> None:
        if isinstance(outcome, BaseException):
            logger.error(f"Unexpected error reconciling {key}: {outcome}")
            self._not_before.pop(key, None)
        elif outcome.error is not None and outcome.requeue_after:
            now = asyncio.get_running_loop().time()
            self._not_before[key] = now + outcome.requeue_after
        else:
            self._not_before.pop(key, None)

    async def stop(self):
        """Stop the reconciliation loop after the current cycle."""
        logger.info("Stopping operator controller")
        self.running = False

    async def _publish(self, event_type: EventType, cluster: Cluster, message: str):
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            ReconcileEvent(
                event_type=event_type,
                kind="CrdbCluster",
                namespace=cluster.namespace,
                name=cluster.name,
                message=message,
            )
        )
