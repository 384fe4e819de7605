"""
Plugin system for the operator.

This package provides the lifecycle actions and the registry that orders
them.
"""

from plugins.base import ActionContext, ActionType
from plugins.registry import ActionRegistry, get_registry

__all__ = [
    "ActionContext",
    "ActionType",
    "ActionRegistry",
    "get_registry",
]
