"""
Columnar encoding of a flattened batch into a pyarrow Table.

Column layout is fixed: system columns first, then every flattened column
(sorted, all strings), then one int64 epoch-millisecond column per detected
timestamp field.
"""

import logging
from collections import Counter
from datetime import date, datetime, timezone
from decimal import Decimal

import pyarrow as pa

from sync_parquet.errors import EncodingError
from sync_parquet.transform import to_json

logger = logging.getLogger(__name__)

RECORD_ID_COLUMN = '_record_id'
SYNC_TIMESTAMP_COLUMN = '_sync_timestamp'
SYSTEM_COLUMNS = (RECORD_ID_COLUMN, SYNC_TIMESTAMP_COLUMN)
TIMESTAMP_COLUMN_PREFIX = 'timestamp_'

KIND_SYSTEM = 'system'
KIND_FLATTENED = 'flattened'
KIND_TIMESTAMP = 'timestamp'


def timestamp_column_name(source_field):
    return TIMESTAMP_COLUMN_PREFIX + source_field


def utc_now_iso():
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


class ColumnSpec:
    """One output column and its Arrow type."""

    def __init__(self, name, kind, source=None):
        self.name = name
        self.kind = kind
        # for timestamp columns, the flattened column the value was detected in
        self.source = source

    @property
    def arrow_type(self):
        return pa.int64() if self.kind == KIND_TIMESTAMP else pa.string()

    @property
    def nullable(self):
        return self.kind != KIND_SYSTEM

    def to_field(self):
        return pa.field(self.name, self.arrow_type, nullable=self.nullable)

    def __repr__(self):
        return f"ColumnSpec({self.name!r}, {self.kind!r})"


class BatchSchema:
    """Union schema of a batch: every flattened column plus timestamp sources."""

    def __init__(self, all_columns, timestamp_columns):
        self.all_columns = sorted(set(all_columns))
        self.timestamp_columns = sorted(set(timestamp_columns))

    @property
    def columns(self):
        specs = [ColumnSpec(name, KIND_SYSTEM) for name in SYSTEM_COLUMNS]
        specs.extend(ColumnSpec(name, KIND_FLATTENED) for name in self.all_columns)
        specs.extend(
            ColumnSpec(timestamp_column_name(name), KIND_TIMESTAMP, source=name)
            for name in self.timestamp_columns
        )
        return specs

    @property
    def column_names(self):
        return [spec.name for spec in self.columns]

    def to_arrow_schema(self):
        return pa.schema([spec.to_field() for spec in self.columns])


class ColumnSet:
    """Encoded batch: the Arrow table plus what is needed to describe it."""

    def __init__(self, table, schema, records, synced_at):
        self.table = table
        self.schema = schema
        self.records = records
        self.synced_at = synced_at

    @property
    def record_count(self):
        return len(self.records)

    @property
    def is_empty(self):
        return not self.records


def to_column_string(value):
    """
    Convert any flattened value to the text stored in a string column.

    Whole numbers never carry a trailing '.0' and floats never use exponent
    notation, so one column keeps one stable textual form.
    """
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), 'f')
    if isinstance(value, Decimal):
        return format(value, 'f')
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return to_json(value)


def build_batch_schema(all_columns, timestamp_columns):
    return BatchSchema(all_columns, timestamp_columns)


def _warn_on_duplicates(schema):
    duplicates = [name for name, count in Counter(schema.column_names).items() if count > 1]
    if duplicates:
        logger.warning(
            f"[ENCODE] Duplicate column names in batch schema: {duplicates[:10]}",
            extra={'duplicate_columns': duplicates}
        )


def encode(flattened_records, all_columns, timestamp_columns, synced_at=None):
    """
    Transpose flattened records into typed Arrow columns.

    Args:
        flattened_records (list): FlattenedRecord objects, one per row
        all_columns (list): Union of flattened column names
        timestamp_columns (list): Source fields that produced a timestamp
        synced_at (str): ISO-8601 sync time written to every row, now if None

    Returns:
        ColumnSet: The Arrow table with its batch schema

    Raises:
        EncodingError: If pyarrow rejects the schema or a column
    """
    schema = build_batch_schema(all_columns, timestamp_columns)
    synced_at = synced_at or utc_now_iso()
    _warn_on_duplicates(schema)

    row_count = len(flattened_records)
    system_values = {
        RECORD_ID_COLUMN: [record.record_id for record in flattened_records],
        SYNC_TIMESTAMP_COLUMN: [synced_at] * row_count,
    }
    values = {}
    for column in schema.all_columns:
        # absent fields are written as '' rather than null
        values[column] = [to_column_string(record.get(column)) for record in flattened_records]
    timestamp_values = {
        source: [record.get_timestamp(source) for record in flattened_records]
        for source in schema.timestamp_columns
    }

    try:
        arrow_schema = schema.to_arrow_schema()
        arrays = []
        for spec in schema.columns:
            if spec.kind == KIND_SYSTEM:
                column_values = system_values[spec.name]
            elif spec.kind == KIND_TIMESTAMP:
                column_values = timestamp_values[spec.source]
            else:
                column_values = values[spec.name]
            arrays.append(pa.array(column_values, type=spec.arrow_type))
        table = pa.Table.from_arrays(arrays, schema=arrow_schema)
    except (pa.ArrowException, TypeError, ValueError) as e:
        raise EncodingError(f"failed to build column arrays: {e}") from e

    logger.info(
        f"[ENCODE] Built table with {table.num_rows} rows and {table.num_columns} columns "
        f"({len(SYSTEM_COLUMNS)} system + {len(schema.all_columns)} flattened + "
        f"{len(schema.timestamp_columns)} timestamp)",
        extra={'row_count': table.num_rows, 'column_count': table.num_columns}
    )
    return ColumnSet(table, schema, list(flattened_records), synced_at)
