"""
Core plugin types and dataclasses.

This module contains shared types used across the action plugins.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum

from sequencer import LoopCanceller

logger = logging.getLogger(__name__)


class ActionType(Enum):
    """Lifecycle stages an action can represent, used for status reporting."""

    DEPLOY = "Deploy"
    INITIALIZE = "Initialize"
    VERSION_CHECKER = "VersionCheckerAction"
    PARTITIONED_UPDATE = "PartitionedUpdate"
    CLUSTER_RESTART = "ClusterRestart"
    DECOMMISSION = "Decommission"
    UNKNOWN = "Unknown"


@dataclass
class ActionContext:
    """Context passed to an action for one pass."""

    canceller: LoopCanceller = field(default_factory=LoopCanceller)
    pass_id: str = field(default_factory=lambda: str(uuid.uuid4()))
