"""
Transformation module that flattens raw CRM records into flat, queryable
columns and unifies the column set across a batch.

Example:
    {"address": {"state": "CA"}, "tags": [1, 2]}
    --> {"address_state": "CA", "tags": "[1,2]"}
"""

import json
import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sync_parquet.config.platforms import TransformConfig
from sync_parquet.errors import TransformError
from sync_parquet.timestamps import detect_timestamp

logger = logging.getLogger(__name__)

RECORD_ID_FIELDS = ('id', 'Id', 'ID', '_id', 'uuid')
EMPTY_SEGMENT_NAME = 'field'

_INVALID_CHARS = re.compile(r'[^a-z0-9_]')
_REPEATED_UNDERSCORES = re.compile(r'_{2,}')


def json_serializer(obj):
    """JSON serializer for objects not serializable by default"""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, bytes):
        return obj.decode('utf-8', errors='ignore')
    return str(obj)


def _whole_floats_to_int(value):
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    if isinstance(value, dict):
        return {key: _whole_floats_to_int(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_whole_floats_to_int(item) for item in value]
    return value


def to_json(value) -> str:
    """
    Compact JSON encoding used for every JSON-string column.
    Whole-valued floats are written without '.0', so [1.0, 2.5] becomes "[1,2.5]".
    """
    return json.dumps(_whole_floats_to_int(value), separators=(',', ':'),
                      ensure_ascii=False, default=json_serializer)


def sanitize_field_name(name: str) -> str:
    """
    Make one path segment safe for SQL/Parquet column names.

    Lower-cases, maps '-', '.' and spaces to underscores, strips anything
    outside [a-z0-9_], collapses repeated underscores, trims them from both
    ends and prefixes '_' when the result starts with a digit.
    """
    name = str(name).lower()
    for char in ('-', '.', ' '):
        name = name.replace(char, '_')
    name = _INVALID_CHARS.sub('', name)
    name = _REPEATED_UNDERSCORES.sub('_', name)
    name = name.strip('_')
    if name and name[0].isdigit():
        name = '_' + name
    return name


def hash_name(name: str) -> str:
    """Base-31 checksum of the name, mod 10000, zero-padded to 4 digits."""
    total = 0
    for byte in name.encode('utf-8'):
        total = (total * 31 + byte) & 0xFFFFFFFF
    return f"{total % 10000:04d}"


def shorten_column_name(name: str, max_length: int) -> str:
    """
    Fit a column name into max_length characters.

    Over-length names keep a prefix and a suffix around a hash of the full
    name, so the same input always yields the same output. Distinct inputs
    can still collide on the 4-digit hash.
    """
    if len(name) <= max_length:
        return name
    keep = max(max_length // 2 - 4, 0)
    prefix = name[:keep]
    suffix = name[len(name) - keep:] if keep else ''
    return f"{prefix}_{hash_name(name)}_{suffix}"[:max_length]


def extract_record_id(record: Dict[str, Any]) -> str:
    """
    Extract a record ID from a raw API record.

    Probes id, Id, ID, _id and uuid in order. Returns an empty string when
    none of them holds a string or a number.
    """
    for field in RECORD_ID_FIELDS:
        if field not in record:
            continue
        value = record[field]
        if isinstance(value, bool):
            continue
        if isinstance(value, str):
            return value
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if value.is_integer():
                return str(int(value))
            return repr(value)
        if isinstance(value, Decimal):
            return format(value, 'f')
    return ''


class FlattenedRecord:
    """One raw record after flattening. Read-only once built."""

    __slots__ = ('_fields', '_timestamp_fields', '_field_list', '_record_id')

    def __init__(self, fields, timestamp_fields, record_id=''):
        self._fields = dict(fields)
        self._timestamp_fields = dict(timestamp_fields)
        self._field_list = tuple(sorted(self._fields))
        self._record_id = record_id

    @property
    def fields(self) -> Dict[str, Any]:
        return dict(self._fields)

    @property
    def timestamp_fields(self) -> Dict[str, int]:
        return dict(self._timestamp_fields)

    @property
    def field_list(self) -> List[str]:
        return list(self._field_list)

    @property
    def record_id(self) -> str:
        return self._record_id

    def get(self, column, default=None):
        return self._fields.get(column, default)

    def has(self, column) -> bool:
        return column in self._fields

    def get_timestamp(self, column) -> Optional[int]:
        return self._timestamp_fields.get(column)

    def __repr__(self):
        return f"FlattenedRecord(record_id={self._record_id!r}, fields={self._fields!r})"


class RecordFlattener:
    """Depth-first flattener for a single record under one TransformConfig."""

    def __init__(self, config: TransformConfig):
        self.config = config
        self.fields = {}
        self.timestamp_fields = {}

    def flatten(self, record: Dict[str, Any]) -> FlattenedRecord:
        self._flatten_map(record, '', 0)
        return FlattenedRecord(self.fields, self.timestamp_fields, extract_record_id(record))

    def _build_field_name(self, prefix, key):
        key = sanitize_field_name(key) or EMPTY_SEGMENT_NAME
        full_name = f"{prefix}_{key}" if prefix else key
        return shorten_column_name(full_name, self.config.max_column_name_length)

    def _is_excluded(self, field_name):
        for excluded in self.config.exclude_fields:
            if field_name == excluded or field_name.startswith(excluded + '_'):
                return True
        return False

    def _record(self, field_name, value):
        field_name = shorten_column_name(field_name, self.config.max_column_name_length)
        self.fields[field_name] = value
        return field_name

    def _nested_allowed(self, depth):
        return self.config.max_depth == 0 or depth < self.config.max_depth

    def _flatten_map(self, data, prefix, depth):
        for key, value in data.items():
            field_name = self._build_field_name(prefix, key)
            if self._is_excluded(field_name):
                continue
            field_name = self.config.field_mappings.get(field_name, field_name)
            self._flatten_value(field_name, value, depth)

    def _flatten_value(self, field_name, value, depth):
        if value is None:
            if self.config.preserve_nulls:
                self._record(field_name, None)
            return

        if isinstance(value, dict):
            if self._nested_allowed(depth):
                self._flatten_map(value, field_name, depth + 1)
            else:
                self._record(field_name + '_json', to_json(value))
        elif isinstance(value, (list, tuple)):
            if self.config.flatten_arrays:
                self._flatten_array(field_name, list(value), depth)
            else:
                self._record(field_name, to_json(list(value)))
        else:
            column = self._record(field_name, normalize_value(value))
            epoch_millis = detect_timestamp(column, value)
            if epoch_millis is not None:
                self.timestamp_fields[column] = epoch_millis

    def _flatten_array(self, field_name, items, depth):
        if not items:
            self._record(field_name, '[]')
            return

        if not any(isinstance(item, dict) for item in items):
            self._record(field_name, to_json(items))
            return

        max_index = self.config.max_array_index
        for index, item in enumerate(items):
            if max_index >= 0 and index > max_index:
                break
            if not isinstance(item, dict):
                continue
            indexed_prefix = f"{field_name}_{index}"
            if self._nested_allowed(depth):
                self._flatten_map(item, indexed_prefix, depth + 1)
            else:
                self._record(indexed_prefix, to_json(item))
        # count reflects the original array, not how many elements were expanded
        self._record(field_name + '_count', len(items))


def normalize_value(value):
    """Whole-valued floats become ints; strings are trimmed."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def flatten_record(record: Dict[str, Any], config: Optional[TransformConfig] = None) -> FlattenedRecord:
    """
    Flatten one nested JSON record into queryable columns.

    Args:
        record (dict): Raw record as returned by a CRM API
        config (TransformConfig): Flattening options, defaults when None

    Returns:
        FlattenedRecord: Flat fields plus any detected timestamps

    Raises:
        TransformError: If the record is not a JSON object
    """
    if not isinstance(record, dict):
        raise TransformError(f"expected a JSON object, got {type(record).__name__}")
    return RecordFlattener(config or TransformConfig()).flatten(record)


def collect_timestamp_fields(records: List[FlattenedRecord]) -> List[str]:
    """Sorted union of every timestamp source field across the records."""
    names = set()
    for record in records:
        names.update(record.timestamp_fields)
    return sorted(names)


def unify_records(records: List[Dict[str, Any]],
                  config: Optional[TransformConfig] = None
                  ) -> Tuple[List[FlattenedRecord], List[str], List[str]]:
    """
    Flatten every record of a batch and compute one schema for all of them.

    Columnar files need a single fixed schema, while each record may expose
    different optional fields, so all records are flattened before any
    column is decided.

    Returns:
        tuple: (flattened_records, all_columns, timestamp_columns), both
        column lists sorted
    """
    if not records:
        return [], [], []

    flattened = []
    all_columns = set()
    for index, record in enumerate(records):
        try:
            transformed = flatten_record(record, config)
        except TransformError as e:
            raise TransformError(f"failed to transform record {index}: {e.detail}") from e
        flattened.append(transformed)
        all_columns.update(transformed.field_list)

    timestamp_columns = collect_timestamp_fields(flattened)
    logger.info(
        f"[TRANSFORM] Flattened {len(flattened)} records into {len(all_columns)} columns "
        f"({len(timestamp_columns)} timestamp fields detected)",
        extra={'record_count': len(flattened), 'column_count': len(all_columns)}
    )
    return flattened, sorted(all_columns), timestamp_columns
