"""Value parsing utilities for LINE chat_history rows.

Handles:
- Tab-delimited ``parameter`` blob decoding
- Lenient integer parsing of parameter values
- String and numeric coercion of raw column values
- Read-status mapping

Nothing in this module raises on malformed input. The parameter format is
undocumented and drifts across LINE app versions, so anomalies degrade to
partial or default values.
"""

import logging
import math
import re
from typing import Any

logger = logging.getLogger(__name__)

# Raw status value the client writes once a message has been read
STATUS_READ = 3

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def parse_parameter(raw: str | None) -> dict[str, str]:
    """Decode a tab-delimited ``key\\tvalue\\tkey\\tvalue...`` blob.

    Pairs with an empty key are skipped, a missing trailing value becomes "",
    and a later duplicate key overwrites an earlier one.

    Args:
        raw: Raw ``parameter`` column value, or None

    Returns:
        Mapping of parameter keys to values (empty for None/empty input)
    """
    if not raw or not isinstance(raw, str):
        return {}

    parts = raw.split("\t")
    result: dict[str, str] = {}
    for i in range(0, len(parts), 2):
        key = parts[i]
        if not key:
            continue
        result[key] = parts[i + 1] if i + 1 < len(parts) else ""
    return result


def parse_int(value: Any, default: int | None = None) -> int | None:
    """Parse the leading integer of a value.

    Accepts ints, finite floats (truncated) and strings starting with an
    optional sign and digits ("120abc" -> 120). Anything else yields default.

    Args:
        value: Value to parse
        default: Fallback when no integer can be read

    Returns:
        Parsed integer or default
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        match = _LEADING_INT_RE.match(value)
        if match:
            return int(match.group(1))
        if value:
            logger.debug("Non-numeric parameter value: %r", value[:50])
    return default


def coerce_str(value: Any, default: str | None = None) -> str | None:
    """Coerce a raw column value to str.

    Strings pass through, ints and floats are rendered, anything else
    (None, bytes, ...) yields default.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    return default


def coerce_number(value: Any, default: float | None = None) -> float | None:
    """Coerce a raw column value to a finite number.

    Ints and floats pass through, numeric strings are parsed. Booleans and
    non-finite results yield default.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else default
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            number = int(text)
        except ValueError:
            try:
                number_f = float(text)
            except ValueError:
                return default
            return number_f if math.isfinite(number_f) else default
        return number
    return default


def is_status_read(raw: Any) -> bool:
    """Whether a raw status column value means the message was read."""
    return coerce_number(raw) == STATUS_READ
