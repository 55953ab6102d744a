"""Parsing and normalization helpers for configuration values."""

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_float_mapping(value: Any, *, source: str) -> Dict[str, float]:
    """Parse a ``{name: number}`` mapping, skipping entries that are not numeric."""
    if not isinstance(value, dict):
        logger.warning("Ignoring %s: expected a table, got %r", source, type(value).__name__)
        return {}

    parsed: Dict[str, float] = {}
    for raw_name, raw_value in value.items():
        try:
            parsed[str(raw_name)] = float(raw_value)
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring %s entry '%s': value must be numeric, got %r",
                source,
                raw_name,
                raw_value,
            )
    return parsed
