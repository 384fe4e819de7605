"""
Action Registry - Discovery and registration of lifecycle actions.

Actions are kept in registration order; the host loop runs the first one
whose gate accepts the cluster's conditions.
"""

from importlib.metadata import entry_points
from typing import Dict, List, Optional, Type

from features import FeatureGate
from plugins.actions.base import Action
from plugins.base import logger
from reconcile import ReconcileEngine

ENTRY_POINT_GROUP = "crdb.actions"


class ActionRegistry:
    """Central registry for action classes."""

    def __init__(self):
        # Registered action classes, in registration order (not instantiated)
        self._actions: Dict[str, Type[Action]] = {}

    def register_action(self, action_class: Type[Action], name: Optional[str] = None):
        """
        Register an action class.

        Args:
            action_class: The Action subclass to register
            name: Registration name, defaults to the class name
        """
        name = name or action_class.__name__
        if name in self._actions:
            logger.warning(f"Overwriting existing action: {name}")
        self._actions[name] = action_class
        logger.info(f"Registered action: {name}")

    def has_action(self, name: str) -> bool:
        return name in self._actions

    def list_actions(self) -> List[str]:
        """List all registered action names, in registration order."""
        return list(self._actions.keys())

    def get_action_class(self, name: str) -> Type[Action]:
        """
        Get a registered action class by name.

        Raises:
            ValueError: If the action name is not registered
        """
        if name not in self._actions:
            available = ", ".join(self._actions.keys()) or "none"
            raise ValueError(f"Unknown action: {name}. Available actions: {available}")
        return self._actions[name]

    def create_actions(
        self, engine: ReconcileEngine, feature_gate: Optional[FeatureGate] = None
    ) -> List[Action]:
        """Instantiate every registered action, in registration order."""
        return [cls(engine, feature_gate) for cls in self._actions.values()]


# Global registry instance
_registry: Optional[ActionRegistry] = None


def get_registry() -> ActionRegistry:
    """Get the global action registry singleton."""
    global _registry
    if _registry is None:
        _registry = ActionRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_actions(registry: Optional[ActionRegistry] = None) -> None:
    """
    Register the built-in actions and discover extra ones via entry points.

    Args:
        registry: Registry to populate, defaults to the global one
    """
    registry = registry or get_registry()

    from plugins.actions.deploy import DeployAction

    registry.register_action(DeployAction)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            action_class = ep.load()
        except (ImportError, AttributeError) as e:
            logger.warning(f"Could not load action plugin {ep.name}: {e}")
            continue
        registry.register_action(action_class, name=ep.name)
