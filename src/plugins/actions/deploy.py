"""
Deploy Action - creates and reconciles the objects a cluster runs on.

The discovery service, the public service, the statefulset and the pod
disruption budget are reconciled in that order, one write per pass.
"""

import logging
from typing import Iterable, List, Optional

from builders import (
    DiscoveryServiceBuilder,
    PdbBuilder,
    PublicServiceBuilder,
    StatefulSetBuilder,
)
from cluster import Cluster
from conditions import (
    ClusterCondition,
    ConditionGate,
    ConditionStatus,
    ConditionType,
    Is,
    Present,
)
from features import CRDB_VERSION_VALIDATOR, FeatureGate
from plugins.actions.base import Action
from plugins.base import ActionContext, ActionType
from reconcile import ReconcileEngine
from sequencer import ActionSequencer, Step, StepResult

logger = logging.getLogger(__name__)


def needs_disruption_budget(cluster: Cluster) -> bool:
    # a PDB is meaningless with a single node; nodes == 1 is still valid
    return cluster.spec.nodes > 1


DEPLOY_STEPS: List[Step] = [
    Step(DiscoveryServiceBuilder, name="discovery service"),
    Step(PublicServiceBuilder, name="public service"),
    Step(StatefulSetBuilder, name="statefulset"),
    Step(PdbBuilder, name="pdb", guard=needs_disruption_budget),
]


class DeployAction(Action):
    """Reconciles the services, statefulset and disruption budget."""

    def __init__(
        self, engine: ReconcileEngine, feature_gate: Optional[FeatureGate] = None
    ):
        super().__init__(engine, feature_gate)
        self.gate = ConditionGate(
            requirement=Present(ConditionType.INITIALIZED),
            feature=CRDB_VERSION_VALIDATOR,
            feature_requirement=Is(
                ConditionType.CRDB_VERSION_CHECKED, ConditionStatus.TRUE
            ),
            feature_gate=self.feature_gate,
        )
        self.sequencer = ActionSequencer(engine, DEPLOY_STEPS)

    @property
    def action_type(self) -> ActionType:
        return ActionType.DEPLOY

    def handles(self, conditions: Iterable[ClusterCondition]) -> bool:
        return self.gate.handles(conditions)

    async def act(self, ctx: ActionContext, cluster: Cluster) -> List[StepResult]:
        logger.debug(f"Reconciling resources on deploy action for {cluster.object_key}")
        results = await self.sequencer.act(ctx, cluster)
        if not ctx.canceller.cancelled:
            logger.debug(f"Deployed database {cluster.object_key}")
        return results
