"""
Declarative field mapping.

A mapping converts an arbitrary upstream record into a flat dict of
normalized attributes:

    {
        "id": "id",                                   # plain dotted path
        "symbol": {"source": "symbol", "transform": "uppercase"},
        "tvl": {"source": "metrics.tvl.usd", "default": 0, "transform": "number"},
    }

Lookups descend through dicts by key and lists by integer index. Missing
paths resolve to None (or the rule's default). Transforms run only on a
present value and return None instead of raising when the value cannot be
converted; upstream payloads carry no schema guarantee.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_MISSING = object()


class Transform(str, Enum):
    """Closed set of value transforms."""

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    ARRAY = "array"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"


def get_nested_value(record: Any, path: str) -> Any:
    """
    Resolve a dot-separated path against nested dicts and lists.

    Returns None when any segment is missing.

    >>> get_nested_value({"a": {"b": [10, 20]}}, "a.b.1")
    20
    """
    if not path:
        return None
    return _lookup(record, path.split("."))


def _lookup(node: Any, segments: list[str]) -> Any:
    if not segments:
        return node

    head, rest = segments[0], segments[1:]

    if isinstance(node, dict):
        child = node.get(head, _MISSING)
    elif isinstance(node, list):
        try:
            child = node[int(head)]
        except (ValueError, IndexError):
            child = _MISSING
    else:
        child = _MISSING

    if child is _MISSING:
        return None
    return _lookup(child, rest)


def _to_number(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    try:
        text = str(value).strip().replace(",", "")
        number = float(text)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return int(number) if number.is_integer() and "." not in text else number


def _to_date(value: Any) -> str | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Values this large are epoch milliseconds
        seconds = value / 1000 if value > 1e11 else value
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.isoformat()


def apply_transform(value: Any, transform: Transform | str) -> Any:
    """Apply a single transform to a present value."""
    transform = Transform(transform)

    if transform is Transform.STRING:
        return str(value)
    if transform is Transform.NUMBER:
        return _to_number(value)
    if transform is Transform.DATE:
        return _to_date(value)
    if transform is Transform.ARRAY:
        if isinstance(value, list):
            return value
        if isinstance(value, (tuple, set)):
            return list(value)
        return [value]
    if transform is Transform.LOWERCASE:
        return str(value).lower()
    if transform is Transform.UPPERCASE:
        return str(value).upper()
    return value


def apply_mapping(record: dict[str, Any], mapping: dict[str, Any]) -> dict[str, Any]:
    """
    Apply a field mapping to one upstream record.

    Args:
        record: Raw record as parsed from the upstream payload
        mapping: {target_field: path | {source, default?, transform?}}

    Returns:
        Dict of target fields whose value resolved to something other than None
    """
    result: dict[str, Any] = {}

    for target, rule in mapping.items():
        if isinstance(rule, str):
            value = get_nested_value(record, rule)
        elif isinstance(rule, dict):
            value = get_nested_value(record, rule.get("source", ""))

            if value is None and "default" in rule:
                value = rule["default"]

            transform = rule.get("transform")
            if value is not None and transform:
                try:
                    value = apply_transform(value, transform)
                except ValueError:
                    logger.debug(f"Unknown transform {transform!r} for field {target}")
        else:
            logger.debug(f"Ignoring malformed mapping rule for field {target}")
            value = None

        if value is not None:
            result[target] = value

    return result
