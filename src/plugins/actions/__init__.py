"""
Action plugins package.

Action plugins implement the lifecycle stages of a cluster (deploy, and
whatever other stages are registered through entry points).
"""

from plugins.actions.base import Action

__all__ = ["Action"]
