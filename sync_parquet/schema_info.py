"""
Schema description written next to every Parquet file as schema.json.
Downstream query tooling reads it to render human-friendly column lists.
"""

import json
import re

from sync_parquet.encoder import (
    RECORD_ID_COLUMN,
    SYNC_TIMESTAMP_COLUMN,
    timestamp_column_name,
    to_column_string,
)

MAX_SAMPLE_VALUES = 5
MAX_SAMPLE_LENGTH = 100

TYPE_STRING = 'string'
TYPE_DATE = 'date'

_ARRAY_INDEX = re.compile(r'^[0-9]+$')
_TRAILING_DIGITS = re.compile(r'[0-9]+$')


class ColumnInfo:
    """Description of one column in schema.json."""

    def __init__(self, column_type, display_name, nullable=True, sample_values=None):
        self.type = column_type
        self.display_name = display_name
        self.nullable = nullable
        self.sample_values = list(sample_values or [])

    def to_dict(self):
        return {
            'type': self.type,
            'display_name': self.display_name,
            'nullable': self.nullable,
            'sample_values': list(self.sample_values),
        }


class SchemaInfo:
    """Record count, sync time and column descriptions for one batch."""

    def __init__(self, record_count, synced_at, columns=None):
        self.record_count = record_count
        self.synced_at = synced_at
        self.columns = dict(columns or {})
        # size of the Parquet object this describes; not part of schema.json
        self.file_size_bytes = 0

    def to_document(self, connection_id=None, object_type=None):
        return {
            'connection_id': connection_id,
            'object_type': object_type,
            'record_count': self.record_count,
            'synced_at': self.synced_at,
            'columns': {name: info.to_dict() for name, info in sorted(self.columns.items())},
        }

    def to_json(self, connection_id=None, object_type=None):
        return json.dumps(self.to_document(connection_id, object_type), indent=2)


def generate_display_name(field_name):
    """
    Convert a snake_case column name to Title Case.

    Numeric segments are array indices: they are folded into the previous
    word as 1-based numbers, so "addresses_0_city" becomes "Address 1 - City".
    The name is split after the first word ending in digits, whether it came
    from an index or from the field itself ("line1_city" -> "Line1 - City").
    """
    words = []
    for part in field_name.split('_'):
        if _ARRAY_INDEX.match(part):
            if not words:
                continue
            previous = words[-1]
            if len(previous) > 1 and previous.endswith('s'):
                previous = previous[:-1]
            words[-1] = f"{previous} {int(part) + 1}"
        elif part:
            words.append(part[:1].upper() + part[1:])

    if len(words) > 1:
        for position, word in enumerate(words):
            if _TRAILING_DIGITS.search(word):
                head = ' '.join(words[:position + 1])
                tail = ' '.join(words[position + 1:])
                return f"{head} - {tail}" if tail else head
    return ' '.join(words)


def collect_sample_values(records, column):
    """Up to 5 distinct, non-empty, short values of a column from the first 5 records."""
    samples = []
    for record in records[:MAX_SAMPLE_VALUES]:
        if not record.has(column):
            continue
        value = to_column_string(record.get(column))
        if value and value not in samples and len(value) < MAX_SAMPLE_LENGTH:
            samples.append(value)
    return samples


def empty_schema_info(synced_at=None):
    return SchemaInfo(record_count=0, synced_at=synced_at, columns={})


def build_schema_info(column_set):
    """
    Describe an encoded batch.

    Args:
        column_set (ColumnSet): Output of encoder.encode

    Returns:
        SchemaInfo: Types, display names and sample values per column
    """
    schema = column_set.schema
    records = column_set.records

    columns = {
        RECORD_ID_COLUMN: ColumnInfo(TYPE_STRING, 'Record ID', nullable=False),
        SYNC_TIMESTAMP_COLUMN: ColumnInfo(TYPE_DATE, 'Sync Timestamp', nullable=False),
    }
    for column in schema.all_columns:
        columns[column] = ColumnInfo(
            TYPE_STRING,
            generate_display_name(column),
            nullable=True,
            sample_values=collect_sample_values(records, column),
        )
    for source in schema.timestamp_columns:
        columns[timestamp_column_name(source)] = ColumnInfo(
            TYPE_DATE,
            generate_display_name(source) + ' (Timestamp)',
            nullable=True,
        )

    return SchemaInfo(
        record_count=column_set.record_count,
        synced_at=column_set.synced_at,
        columns=columns,
    )
