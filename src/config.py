"""
Configuration module for the operator.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from features import FeatureGate
from patch import LAST_APPLIED_ANNOTATION


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class EngineConfig:
    """Reconcile engine configuration."""

    last_applied_annotation: str = LAST_APPLIED_ANNOTATION

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            last_applied_annotation=os.getenv(
                "LAST_APPLIED_ANNOTATION", LAST_APPLIED_ANNOTATION
            ),
        )


@dataclass
class ControllerConfig:
    """Host reconciliation loop configuration."""

    reconcile_interval: int = 60  # seconds
    max_concurrent_reconciles: int = 5
    max_passes: int = 10  # passes per converge() call

    # Exponential backoff configuration
    backoff_base_delay: int = 60  # base delay in seconds
    backoff_max_delay: int = 3600  # max delay in seconds (1 hour)
    backoff_jitter_factor: float = 0.1  # ±10% jitter

    # Cluster manifest files the standalone host reconciles
    manifest_paths: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        manifests = os.getenv("CLUSTER_MANIFESTS", "")
        return cls(
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "60")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            max_passes=int(os.getenv("MAX_PASSES", "10")),
            backoff_base_delay=int(os.getenv("BACKOFF_BASE_DELAY", "60")),
            backoff_max_delay=int(os.getenv("BACKOFF_MAX_DELAY", "3600")),
            backoff_jitter_factor=float(os.getenv("BACKOFF_JITTER_FACTOR", "0.1")),
            manifest_paths=[p.strip() for p in manifests.split(",") if p.strip()],
        )


@dataclass
class StoreConfig:
    """Kubernetes API server connection configuration."""

    api_url: str = "https://kubernetes.default.svc"
    token: str = field(default="", repr=False)  # Never log the token
    verify_ssl: bool = True
    request_timeout: int = 30  # seconds

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            api_url=os.getenv("KUBE_API_URL", "https://kubernetes.default.svc"),
            token=os.getenv("KUBE_TOKEN", ""),
            verify_ssl=_env_bool("KUBE_VERIFY_SSL", "true"),
            request_timeout=int(os.getenv("KUBE_REQUEST_TIMEOUT", "30")),
        )


@dataclass
class Config:
    """Main configuration object."""

    engine: EngineConfig
    controller: ControllerConfig
    store: StoreConfig
    features: FeatureGate

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            engine=EngineConfig.from_env(),
            controller=ControllerConfig.from_env(),
            store=StoreConfig.from_env(),
            features=FeatureGate.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            engine=EngineConfig(),
            controller=ControllerConfig(),
            store=StoreConfig(),
            features=FeatureGate(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
