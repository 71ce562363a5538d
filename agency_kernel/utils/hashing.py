"""
Deterministic hashing utilities.

All hashing in the kernel must be deterministic and reproducible; the
audit chain depends on it.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        # Trailing zeros removed so 10.0 and 10.00 hash alike
        return format(obj.normalize(), "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(str(item) for item in obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys sorted, no whitespace, consistent handling of Decimal, datetime,
    UUID and enums.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_safe(data: dict) -> dict:
    """The exact JSON-native structure that ``hash_payload`` hashes."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """SHA-256 (hex) of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_entry(
    target_table: str | None,
    target_id: str | None,
    action: str,
    actor_id: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash of one audit log entry.

    Every key field plus the previous entry's hash, so altering any stored
    entry breaks every hash after it.
    """
    components = [
        target_table or "",
        target_id or "",
        action,
        actor_id,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
