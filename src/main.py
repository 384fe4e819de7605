"""
Main entry point for the operator.

Reconciles the clusters described by the manifest files listed in
CLUSTER_MANIFESTS against the Kubernetes API server.
"""

import asyncio
import logging
import signal
from typing import List, Optional

import yaml

from cluster import Cluster
from config import get_config
from controller import Controller
from events import EventBus, EventSubscription, EventType
from kube import KubeObjectStore
from plugins.registry import get_registry, register_builtin_actions
from reconcile import ReconcileEngine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# CONVERGED is published for every cluster on every cycle
_EVENT_LOG_LEVELS = {
    EventType.CREATED: logging.INFO,
    EventType.UPDATED: logging.INFO,
    EventType.CONVERGED: logging.DEBUG,
    EventType.FAILED: logging.WARNING,
}


class Application:
    """Main application that wires the store, engine and controller."""

    def __init__(self):
        self.config = get_config()
        self.controller: Optional[Controller] = None
        self.event_bus: Optional[EventBus] = None
        self._event_task: Optional[asyncio.Task] = None

    def initialize(self):
        """Initialize all components."""
        logger.info("Initializing operator")

        register_builtin_actions()
        registry = get_registry()
        logger.info(f"Registered actions: {', '.join(registry.list_actions())}")

        self.event_bus = EventBus()
        store = KubeObjectStore(self.config.store)
        engine = ReconcileEngine.from_config(
            store, self.config.engine, event_bus=self.event_bus
        )
        self.controller = Controller(
            engine,
            registry=registry,
            config=self.config.controller,
            feature_gate=self.config.features,
            event_bus=self.event_bus,
        )

    async def list_clusters(self) -> List[Cluster]:
        """Load every configured manifest, skipping ones that fail to parse."""
        clusters = []
        for path in self.config.controller.manifest_paths:
            try:
                with open(path) as f:
                    clusters.append(Cluster.from_yaml(f.read()))
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.error(f"Skipping cluster manifest {path}: {e}")
        return clusters

    async def log_events(self, subscription: EventSubscription):
        """Write each reconcile event to the log until the bus is closed."""
        async for event in subscription:
            logger.log(
                _EVENT_LOG_LEVELS[event.event_type],
                f"{event.event_type.value} {event.kind} "
                f"{event.namespace}/{event.name}: {event.message}",
            )

    async def start(self):
        """Start the application."""
        if self.controller is None:
            self.initialize()

        if not self.config.controller.manifest_paths:
            logger.warning("CLUSTER_MANIFESTS is empty; nothing to reconcile")

        self._event_task = asyncio.create_task(
            self.log_events(self.event_bus.subscribe())
        )

        await self.controller.start(self.list_clusters)

    async def stop(self):
        """Stop the application gracefully."""
        if self.controller:
            await self.controller.stop()
        if self.event_bus:
            self.event_bus.close()
        if self._event_task:
            await self._event_task
            self._event_task = None
        logger.info("Operator stopped")


async def main():
    """Main entry point."""
    app = Application()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()

    def signal_handler():
        logger.info("Received shutdown signal")
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except asyncio.CancelledError:
        logger.info("Application tasks cancelled")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
