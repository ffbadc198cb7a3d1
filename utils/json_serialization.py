"""
JSON Serialization Utilities for the P2P store
Handles conversion of non-JSON-serializable types (Decimal, datetime, Enum) to JSON-safe formats
and back again when collections are reloaded
"""

import json
from decimal import Decimal, InvalidOperation
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def ensure_json_safe(data: Any) -> Any:
    """
    Recursively convert non-JSON-serializable types to JSON-safe formats

    Args:
        data: Any data structure (dict, list, primitive, etc.)

    Returns:
        JSON-safe version of the data

    Conversions:
        - Decimal -> str (preserves precision)
        - datetime/date -> ISO format string
        - Enum -> its value
        - None, bool, int, float, str -> unchanged
        - dict -> recursively processed
        - list/tuple -> recursively processed
        - other -> str representation
    """
    if data is None:
        return None

    if isinstance(data, Enum):
        return ensure_json_safe(data.value)

    if isinstance(data, (bool, int, float, str)):
        return data

    if isinstance(data, Decimal):
        return str(data)

    if isinstance(data, (datetime, date)):
        return data.isoformat()

    if isinstance(data, dict):
        return {key: ensure_json_safe(value) for key, value in data.items()}

    if isinstance(data, (list, tuple)):
        return [ensure_json_safe(item) for item in data]

    # For any other type, convert to string representation
    return str(data)


def to_decimal(value: Union[Decimal, int, float, str, None]) -> Optional[Decimal]:
    """
    Convert a stored or caller-supplied number to Decimal

    Floats go through str() so 1.0952 stays 1.0952 instead of its binary expansion.
    Raises ValueError for values that are not numbers.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")


def parse_datetime(value: Union[datetime, str, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 string written by ensure_json_safe or the mobile client

    A trailing "Z" (e.g. 2024-06-01T12:00:00.000Z) is read as UTC; older
    interpreters' fromisoformat rejects it.
    """
    if value is None or isinstance(value, datetime):
        return value
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def dumps_collection(records: List[Dict[str, Any]]) -> str:
    """Serialize a list of record dictionaries as a JSON array"""
    return json.dumps(ensure_json_safe(records))


def loads_collection(payload: Optional[str]) -> List[Dict[str, Any]]:
    """Parse a JSON array of records; an absent payload is an empty collection"""
    if not payload:
        return []
    data = json.loads(payload)
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array, got {type(data).__name__}")
    return data
