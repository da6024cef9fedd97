"""
JSON Record Analyzer and Canonicalizer.

Utilities for detecting the JSON types of record fields, accumulating
per-field type statistics over a stream of records, and putting record
members into canonical order.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from jsonstage.common.logging_config import get_stage_logger

logger = get_stage_logger(__name__)

ID_FIELD = "id"

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_DATE_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


class JsonType(str, Enum):
    """Enumeration of JSON data types."""
    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


def detect_json_type(value: Any) -> JsonType:
    """
    Detect the JSON type of a value.

    Args:
        value: The value to check

    Returns:
        JsonType enum value
    """
    if value is None:
        return JsonType.NULL
    elif isinstance(value, bool):
        return JsonType.BOOLEAN
    elif isinstance(value, int):
        return JsonType.INTEGER
    elif isinstance(value, float):
        return JsonType.FLOAT
    elif isinstance(value, str):
        return JsonType.STRING
    elif isinstance(value, list):
        return JsonType.ARRAY
    elif isinstance(value, dict):
        return JsonType.OBJECT
    else:
        raise TypeError(f"Not a JSON value: {value!r}")


def is_uuid(value: str) -> bool:
    """Check for the canonical 8-4-4-4-12 hexadecimal form."""
    return _UUID_RE.match(value) is not None


def looks_like_date_time(value: str) -> bool:
    """Check for an ISO-8601 date and time prefix (YYYY-MM-DDTHH:MM:SS)."""
    return _DATE_TIME_RE.match(value) is not None


@dataclass
class Counts:
    """Type statistics for one top-level field."""
    records: int = 0
    null: int = 0
    boolean: int = 0
    number: int = 0
    integer: int = 0
    floating: int = 0
    string: int = 0
    uuid: int = 0
    date_time: int = 0
    object: int = 0
    array: int = 0

    @property
    def nested(self) -> int:
        return self.object + self.array

    def add_value(self, value: Any) -> None:
        """Record a value observation for this field."""
        self.records += 1
        json_type = detect_json_type(value)

        if json_type == JsonType.NULL:
            self.null += 1
        elif json_type == JsonType.BOOLEAN:
            self.boolean += 1
        elif json_type in (JsonType.INTEGER, JsonType.FLOAT):
            self.number += 1
            if json_type == JsonType.INTEGER:
                self.integer += 1
            else:
                self.floating += 1
        elif json_type == JsonType.STRING:
            self.string += 1
            if is_uuid(value):
                self.uuid += 1
            if looks_like_date_time(value):
                self.date_time += 1
        elif json_type == JsonType.OBJECT:
            self.object += 1
        else:
            self.array += 1

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def canonical_key_order(keys: Iterable[str]) -> List[str]:
    """Order object member names: id first, the rest by code point."""
    return sorted(keys, key=lambda k: (k != ID_FIELD, k))


def _pointer_token(key: str) -> str:
    return key.replace("~", "~0").replace("/", "~1")


def _process_value(value: Any, path: str, depth: int,
                   stats: Optional[Dict[str, Counts]], anonymizer) -> Any:
    if isinstance(value, dict):
        if stats is not None and depth == 0:
            for key, member in value.items():
                stats[key].add_value(member)
        return {
            key: _process_value(value[key], f"{path}/{_pointer_token(key)}",
                                depth + 1, stats, anonymizer)
            for key in canonical_key_order(value)
        }
    if isinstance(value, list):
        return [
            _process_value(item, f"{path}/{i}", depth + 1, stats, anonymizer)
            for i, item in enumerate(value)
        ]
    if anonymizer is not None and value is not None:
        return anonymizer.redact(path, value)
    return value


def process_record(record: Dict[str, Any],
                   stats: Optional[Dict[str, Counts]] = None,
                   anonymizer=None) -> Dict[str, Any]:
    """
    Walk a parsed record once and return its canonical form.

    Every object in the tree has its members reordered by
    canonical_key_order. When stats is given, each top-level field is
    counted in stats (a defaultdict of Counts) under its field name.
    When anonymizer is given, scalar values are passed through its
    redact(path, value) method, with JSON pointer paths.

    Args:
        record: Parsed JSON object
        stats: Optional per-field statistics to update
        anonymizer: Optional object with a redact(path, value) method

    Returns:
        A new record with canonical member order
    """
    return _process_value(record, "", 0, stats, anonymizer)


def canonicalize(record: Dict[str, Any]) -> Dict[str, Any]:
    """Return record with canonical member order at every level."""
    return process_record(record)


class StatisticsCollector:
    """
    Accumulates type statistics for the records of one table.

    Only the first staging pass keeps a collector; the per-field Counts
    it holds are the input of schema inference.
    """

    def __init__(self):
        self.field_stats: Dict[str, Counts] = defaultdict(Counts)
        self.records_observed = 0

    def observe(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Count the top-level fields of record and return it canonicalized."""
        self.records_observed += 1
        return process_record(record, stats=self.field_stats)

    def log_summary(self, table_name: str) -> None:
        for field_name in sorted(self.field_stats):
            counts = self.field_stats[field_name]
            logger.detail(f"Stats: in field: {field_name}",
                          table=table_name, field=field_name, **counts.to_dict())
