"""Validation helpers for raw Riot API payloads."""

from typing import Any, Dict, List

import structlog

from .exceptions import MalformedTelemetry

logger = structlog.get_logger(__name__)


def require_mapping(data: Any, key: str, context_name: str = "data") -> Dict[str, Any]:
    """
    Return ``data[key]`` if it is a dictionary.

    Args:
        data: Parent dictionary
        key: Key of the nested dictionary
        context_name: Name for logging/error context (e.g., "match", "timeline")

    Raises:
        MalformedTelemetry: If the parent or nested value is not a dictionary
    """
    if not isinstance(data, dict):
        raise MalformedTelemetry(
            f"{context_name} is {type(data).__name__}, expected object"
        )
    nested = data.get(key)
    if not isinstance(nested, dict):
        logger.debug(
            "Missing or invalid nested field",
            context=context_name,
            field=key,
            got_type=type(nested).__name__,
        )
        raise MalformedTelemetry(f"{context_name}.{key} is missing or not an object")
    return nested


def require_list(data: Dict[str, Any], key: str, context_name: str = "data") -> List[Any]:
    """
    Return ``data[key]`` if it is a list, treating a missing key as empty.

    Raises:
        MalformedTelemetry: If the value exists but is not a list
    """
    value = data.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedTelemetry(
            f"{context_name}.{key} is {type(value).__name__}, expected list"
        )
    return value
