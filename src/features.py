"""
Feature gates.

Named boolean toggles that change operator behaviour, set from the
FEATURE_GATES environment variable (``Name=true,Other=false``).
"""

import logging
import os
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)

CRDB_VERSION_VALIDATOR = "CrdbVersionValidator"
PARTITIONED_UPDATE = "PartitionedUpdate"

# Known features and their defaults
DEFAULT_FEATURES: Dict[str, bool] = {
    CRDB_VERSION_VALIDATOR: False,
    PARTITIONED_UPDATE: False,
}


class FeatureGate:
    """A set of known features, each enabled or disabled."""

    def __init__(self, defaults: Optional[Mapping[str, bool]] = None):
        self._features: Dict[str, bool] = dict(
            DEFAULT_FEATURES if defaults is None else defaults
        )

    def enabled(self, name: str) -> bool:
        """
        Check whether a feature is enabled.

        Raises:
            ValueError: If the feature is unknown
        """
        if name not in self._features:
            raise ValueError(f"Unknown feature gate: {name}")
        return self._features[name]

    def set(self, name: str, value: bool) -> None:
        if name not in self._features:
            known = ", ".join(sorted(self._features)) or "none"
            raise ValueError(f"Unknown feature gate: {name}. Known features: {known}")
        self._features[name] = value

    def set_from_string(self, value: str) -> None:
        """
        Apply a comma separated ``Name=bool`` list.

        Args:
            value: e.g. ``"CrdbVersionValidator=true,PartitionedUpdate=false"``

        Raises:
            ValueError: If an entry is malformed or names an unknown feature
        """
        for entry in value.split(","):
            entry = entry.strip()
            if not entry:
                continue
            name, sep, raw = entry.partition("=")
            if not sep:
                raise ValueError(f"Malformed feature gate entry: {entry!r}")
            raw = raw.strip().lower()
            if raw not in ("true", "false"):
                raise ValueError(f"Invalid value for feature gate {name}: {raw!r}")
            self.set(name.strip(), raw == "true")

    def as_dict(self) -> Dict[str, bool]:
        return dict(self._features)

    @classmethod
    def from_env(cls) -> "FeatureGate":
        """Load from the FEATURE_GATES environment variable."""
        gate = cls()
        raw = os.getenv("FEATURE_GATES", "")
        if raw:
            gate.set_from_string(raw)
            logger.info(f"Feature gates: {gate.as_dict()}")
        return gate
