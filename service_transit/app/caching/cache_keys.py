"""
Cache key derivation for transit operations.

Keys are built from the operation name and a canonical JSON rendering of the
call: mapping keys sorted, compact separators, scalars turned into stable
strings. Two calls that differ only in argument order or scalar type
(``3`` vs ``"3"``) share an entry.
"""

import hashlib
import json
from typing import Any, Mapping, Optional

from service_transit.app.domain import Operation


CACHE_KEY_PREFIX = "transit"


def normalize_value(value: Any) -> Any:
    """Normalize a value to a stable, JSON-friendly form."""
    if isinstance(value, Mapping):
        return {str(key): normalize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(item) for item in value]
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def canonicalize(arguments: Mapping[str, Any], options: Optional[Mapping[str, Any]] = None) -> str:
    """Render arguments and options as canonical JSON."""
    payload = {
        "arguments": normalize_value(arguments),
        "options": normalize_value(options or {}),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def make_cache_key(
    operation: Operation,
    arguments: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
) -> str:
    """Return the cache key for one operation call."""
    digest = hashlib.sha256(canonicalize(arguments, options).encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}:{Operation(operation).value}:{digest}"
