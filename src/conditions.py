"""
Cluster conditions and condition gates.

Conditions are named tri-state facts about a cluster's lifecycle. A gate is
a declarative predicate over them that decides whether an action is
eligible to run. Lookups are three-valued: an absent condition is distinct
from one that is explicitly True, False or Unknown.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Union

from features import FeatureGate


class ConditionStatus(Enum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType(Enum):
    """Condition types known to the operator."""

    INITIALIZED = "Initialized"
    CRDB_VERSION_CHECKED = "CrdbVersionChecked"
    CLUSTER_RESTARTED = "ClusterRestarted"


ConditionTag = Union[ConditionType, str]


def _tag(condition_type: ConditionTag) -> str:
    if isinstance(condition_type, ConditionType):
        return condition_type.value
    return condition_type


@dataclass
class ClusterCondition:
    """A single condition on a cluster."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[str] = None

    def __post_init__(self):
        self.type = _tag(self.type)
        if not isinstance(self.status, ConditionStatus):
            self.status = ConditionStatus(self.status)


def get_condition(
    condition_type: ConditionTag, conditions: Iterable[ClusterCondition]
) -> Optional[ClusterCondition]:
    tag = _tag(condition_type)
    for condition in conditions:
        if condition.type == tag:
            return condition
    return None


def get_status(
    condition_type: ConditionTag, conditions: Iterable[ClusterCondition]
) -> Optional[ConditionStatus]:
    """Return the condition's status, or None when it is absent."""
    condition = get_condition(condition_type, conditions)
    return condition.status if condition is not None else None


def is_true(
    condition_type: ConditionTag, conditions: Iterable[ClusterCondition]
) -> bool:
    return get_status(condition_type, conditions) is ConditionStatus.TRUE


def is_false(
    condition_type: ConditionTag, conditions: Iterable[ClusterCondition]
) -> bool:
    return get_status(condition_type, conditions) is ConditionStatus.FALSE


def is_unknown(
    condition_type: ConditionTag, conditions: Iterable[ClusterCondition]
) -> bool:
    return get_status(condition_type, conditions) is ConditionStatus.UNKNOWN


def is_absent(
    condition_type: ConditionTag, conditions: Iterable[ClusterCondition]
) -> bool:
    return get_status(condition_type, conditions) is None


def set_condition(
    conditions: List[ClusterCondition],
    condition_type: ConditionTag,
    status: ConditionStatus,
    reason: str = "",
    message: str = "",
) -> ClusterCondition:
    """
    Insert or update a condition in place, keeping one entry per type.

    The transition time only moves when the status actually changes.
    """
    now = datetime.now(timezone.utc).isoformat()
    existing = get_condition(condition_type, conditions)
    if existing is None:
        condition = ClusterCondition(
            type=_tag(condition_type),
            status=status,
            reason=reason,
            message=message,
            last_transition_time=now,
        )
        conditions.append(condition)
        return condition

    if existing.status is not status:
        existing.last_transition_time = now
    existing.status = status
    existing.reason = reason
    existing.message = message
    return existing


# ==================== Predicates ====================


class Predicate(ABC):
    """Base class for condition predicates."""

    @abstractmethod
    def __call__(self, conditions: List[ClusterCondition]) -> bool:
        """Return True when the conditions satisfy the predicate."""
        pass

    def __and__(self, other: "Predicate") -> "Predicate":
        return AllOf(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return AnyOf(self, other)


class Is(Predicate):
    """The condition is present with exactly this status."""

    def __init__(self, condition_type: ConditionTag, status: ConditionStatus):
        self.condition_type = _tag(condition_type)
        self.status = status

    def __call__(self, conditions):
        return get_status(self.condition_type, conditions) is self.status

    def __repr__(self):
        return f"Is({self.condition_type}={self.status.value})"


class Present(Predicate):
    """The condition is explicitly True or explicitly False."""

    def __init__(self, condition_type: ConditionTag):
        self.condition_type = _tag(condition_type)

    def __call__(self, conditions):
        return get_status(self.condition_type, conditions) in (
            ConditionStatus.TRUE,
            ConditionStatus.FALSE,
        )

    def __repr__(self):
        return f"Present({self.condition_type})"


class Absent(Predicate):
    """The condition is not set at all."""

    def __init__(self, condition_type: ConditionTag):
        self.condition_type = _tag(condition_type)

    def __call__(self, conditions):
        return is_absent(self.condition_type, conditions)

    def __repr__(self):
        return f"Absent({self.condition_type})"


class AllOf(Predicate):
    def __init__(self, *predicates: Predicate):
        self.predicates = predicates

    def __call__(self, conditions):
        return all(p(conditions) for p in self.predicates)

    def __repr__(self):
        return f"AllOf{self.predicates!r}"


class AnyOf(Predicate):
    def __init__(self, *predicates: Predicate):
        self.predicates = predicates

    def __call__(self, conditions):
        return any(p(conditions) for p in self.predicates)

    def __repr__(self):
        return f"AnyOf{self.predicates!r}"


class ConditionGate:
    """
    Decides whether an action is eligible for the current conditions.

    ``requirement`` must always hold. When ``feature`` is enabled on the
    feature gate, ``feature_requirement`` must hold as well.
    """

    def __init__(
        self,
        requirement: Predicate,
        feature: Optional[str] = None,
        feature_requirement: Optional[Predicate] = None,
        feature_gate: Optional[FeatureGate] = None,
    ):
        if (feature is None) != (feature_requirement is None):
            raise ValueError("feature and feature_requirement must be set together")
        self.requirement = requirement
        self.feature = feature
        self.feature_requirement = feature_requirement
        self.feature_gate = feature_gate or FeatureGate()

    def handles(self, conditions: Iterable[ClusterCondition]) -> bool:
        conditions = list(conditions)
        if not self.requirement(conditions):
            return False
        if self.feature is not None and self.feature_gate.enabled(self.feature):
            return self.feature_requirement(conditions)
        return True
