"""Guarded lookups over loosely shaped provider JSON.

Every helper returns a default instead of raising, so a missing or malformed
field degrades to ``None`` at the smallest possible granularity.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


def dig(payload: Any, *path: Any, default: Any = None) -> Any:
    """Walk ``path`` through nested dicts/lists, returning ``default`` on any miss."""
    current = payload
    for step in path:
        if isinstance(step, int) and isinstance(current, (list, tuple)):
            if -len(current) <= step < len(current):
                current = current[step]
                continue
            return default
        if isinstance(current, Mapping) and step in current:
            current = current[step]
            continue
        return default
    return default if current is None else current


def to_float(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings to a finite float, else ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


def to_int(value: Any) -> Optional[int]:
    number = to_float(value)
    return int(number) if number is not None else None


def as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


class GlobalShape(str, Enum):
    """The two accepted layouts of the global market snapshot, in lookup order."""

    ENVELOPED = "enveloped"  # {"data": {...}}
    FLAT = "flat"  # {...}


def resolve_global(payload: Any) -> Dict[str, Any]:
    """Return the global snapshot body, trying ``ENVELOPED`` before ``FLAT``."""
    if not isinstance(payload, Mapping):
        return {}
    envelope = payload.get("data")
    if isinstance(envelope, Mapping):
        shape, body = GlobalShape.ENVELOPED, envelope
    else:
        shape, body = GlobalShape.FLAT, payload
    logger.debug("Global snapshot layout: %s", shape.value)
    return dict(body)
