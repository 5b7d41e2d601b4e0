"""
Content hashing for dedup keys.

Hashes are SHA256 truncated to 16 hex characters. Structured payloads are
serialized as canonical JSON (sorted keys, compact separators) so that two
dicts with the same content but different key order hash identically.
"""

import hashlib
import json
from typing import Any


def _canonical(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def content_hash(value: Any) -> str:
    """
    Generate a stable, deterministic hash of a payload.

    Unlike Python's built-in hash(), this is deterministic across process
    restarts and Python versions.

    Args:
        value: A string, or any JSON-serializable structure

    Returns:
        16-character hex string (e.g., "a1b2c3d4e5f67890")
    """
    return hashlib.sha256(_canonical(value).encode("utf-8")).hexdigest()[:16]
