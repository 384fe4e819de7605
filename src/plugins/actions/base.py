"""
Action Plugin Base - Abstract interface for lifecycle actions.

An action represents one stage of a cluster's lifecycle. The host loop asks
each registered action, in order, whether it handles the cluster's current
conditions and runs the first one that does.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from cluster import Cluster
from conditions import ClusterCondition
from features import FeatureGate
from plugins.base import ActionContext, ActionType
from reconcile import ReconcileEngine


class Action(ABC):
    """
    Abstract base class for actions.

    Actions are constructed once per host with the reconcile engine and the
    feature gate, and are then invoked once per pass.
    """

    def __init__(
        self, engine: ReconcileEngine, feature_gate: Optional[FeatureGate] = None
    ):
        self.engine = engine
        self.feature_gate = feature_gate or FeatureGate()

    @property
    @abstractmethod
    def action_type(self) -> ActionType:
        """The lifecycle stage this action represents."""
        pass

    @abstractmethod
    def handles(self, conditions: Iterable[ClusterCondition]) -> bool:
        """
        Decide whether this action is eligible for the given conditions.

        Must be pure: no I/O and no side effects.
        """
        pass

    @abstractmethod
    async def act(self, ctx: ActionContext, cluster: Cluster) -> None:
        """
        Run one pass of this action for a cluster.

        Fire ``ctx.canceller`` when the pass changed something and the host
        loop should re-run the actions against fresh state.

        Args:
            ctx: The pass context
            cluster: The cluster being reconciled

        Raises:
            ReconcileError: If the pass failed; the host decides on backoff
        """
        pass
