"""General Utility Functions."""

from __future__ import annotations

import copy
from typing import Dict, List, Union

__all__ = ["JsonRecord", "JsonValue", "clone_records", "is_data_uri"]


JsonValue = Union[
    None,
    str,
    int,
    bool,
    float,
    Dict[str, "JsonValue"],
    List["JsonValue"],
]
"""The set of types that are natively representable in JSON."""

JsonRecord = Dict[str, JsonValue]
"""One stored document: a JSON object keyed by camelCase field names."""


def clone_records(records: List[JsonRecord]) -> List[JsonRecord]:
    """Deep-copy a list of records so callers cannot alias store state."""
    return copy.deepcopy(records)


def is_data_uri(value: JsonValue) -> bool:
    """``True`` for an inline ``data:`` payload such as a compressed JPEG."""
    return isinstance(value, str) and value.startswith("data:")
