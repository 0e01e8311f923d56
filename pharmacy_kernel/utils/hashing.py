"""
Canonical JSON and payload hashing for audit details.

An audit entry stores its details as JSON together with ``payload_hash``.
Both are derived from the same canonical form (sorted keys, compact
separators, Decimal/UUID/date rendered as strings), so the hash can be
recomputed from the stored details at any time.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _encode_value(value: Any) -> Any:
    # Decimal keeps its scale: "25.00" stays "25.00"
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"cannot put {type(value).__name__} into audit details")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_value)


def json_safe(data: dict) -> dict:
    """The same details with only JSON-native values, as they will be stored."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical form of ``payload``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
