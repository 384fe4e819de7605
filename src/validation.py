"""
Schema Validation - JSON Schema validation of cluster specs.

The cluster spec is validated before any builder sees it, so builders can
assume well-formed input.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError

logger = logging.getLogger(__name__)

CLUSTER_SPEC_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["nodes", "image"],
    "properties": {
        # a single node is allowed; the disruption budget is skipped for it
        "nodes": {"type": "integer", "minimum": 1},
        "image": {"type": "string", "minLength": 1},
        "grpcPort": {"type": "integer", "minimum": 1, "maximum": 65535},
        "httpPort": {"type": "integer", "minimum": 1, "maximum": 65535},
        "sqlPort": {"type": "integer", "minimum": 1, "maximum": 65535},
        "storageSize": {"type": "string", "pattern": "^[0-9]+(Ki|Mi|Gi|Ti)?$"},
        "maxUnavailable": {"type": "integer", "minimum": 1},
        "resources": {"type": "object"},
        "additionalLabels": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    },
}


def validate_spec_against_schema(
    spec: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a spec against a JSON Schema.

    Args:
        spec: The specification to validate
        schema: The JSON Schema to validate against

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validator = Draft7Validator(schema)
        errors = sorted(
            validator.iter_errors(spec), key=lambda e: [str(p) for p in e.path]
        )

        if not errors:
            return True, None

        error_messages = []
        for error in errors:
            path = ".".join(str(p) for p in error.absolute_path) or "(root)"
            error_messages.append(f"{path}: {error.message}")

        return False, "; ".join(error_messages)

    except ValidationError as e:
        return False, f"Validation error: {str(e)}"


def validate_cluster_spec(spec: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate a cluster spec dict against CLUSTER_SPEC_SCHEMA."""
    return validate_spec_against_schema(spec, CLUSTER_SPEC_SCHEMA)
