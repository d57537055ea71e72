from decimal import Decimal
from unittest.mock import patch

import pyarrow as pa
import pytest

from sync_parquet.encoder import (
    KIND_FLATTENED,
    KIND_SYSTEM,
    KIND_TIMESTAMP,
    BatchSchema,
    encode,
    to_column_string,
)
from sync_parquet.errors import EncodingError
from sync_parquet.transform import unify_records

SYNCED_AT = "2024-03-01T12:00:00Z"


def encode_batch(records):
    flattened, all_columns, timestamp_columns = unify_records(records)
    return encode(flattened, all_columns, timestamp_columns, synced_at=SYNCED_AT)


def test_column_order_is_system_flattened_timestamp():
    column_set = encode_batch([
        {"id": 1, "zeta": "z", "alpha": "a", "updated_at": "2024-01-15T10:00:00Z"},
        {"id": 2, "created_at": "2024-01-15T10:00:00Z"},
    ])
    assert column_set.table.column_names == [
        "_record_id",
        "_sync_timestamp",
        "alpha",
        "created_at",
        "id",
        "updated_at",
        "zeta",
        "timestamp_created_at",
        "timestamp_updated_at",
    ]


def test_column_kinds_and_types():
    schema = BatchSchema(["b", "a", "created_at"], ["created_at"])
    kinds = [(spec.name, spec.kind) for spec in schema.columns]
    assert kinds == [
        ("_record_id", KIND_SYSTEM),
        ("_sync_timestamp", KIND_SYSTEM),
        ("a", KIND_FLATTENED),
        ("b", KIND_FLATTENED),
        ("created_at", KIND_FLATTENED),
        ("timestamp_created_at", KIND_TIMESTAMP),
    ]
    arrow_schema = schema.to_arrow_schema()
    assert arrow_schema.field("timestamp_created_at").type == pa.int64()
    assert arrow_schema.field("a").type == pa.string()
    assert not arrow_schema.field("_record_id").nullable
    assert not arrow_schema.field("_sync_timestamp").nullable
    assert arrow_schema.field("a").nullable
    assert arrow_schema.field("timestamp_created_at").nullable


def test_missing_field_is_empty_string():
    column_set = encode_batch([{"id": 1, "phone": "555-0100"}, {"id": 2}])
    assert column_set.table.column("phone").to_pylist() == ["555-0100", ""]
    assert column_set.table.column("phone").null_count == 0


def test_missing_timestamp_is_null():
    column_set = encode_batch([{"id": 1, "created_at": "2024-01-15T10:00:00Z"}, {"id": 2}])
    assert column_set.table.column("timestamp_created_at").to_pylist() == [1705312800000, None]


def test_system_columns():
    column_set = encode_batch([{"id": 7, "x": 1}, {"uuid": "u-1"}, {"name": "anonymous"}])
    table = column_set.table
    assert table.column("_record_id").to_pylist() == ["7", "u-1", ""]
    assert table.column("_sync_timestamp").to_pylist() == [SYNCED_AT] * 3
    assert column_set.record_count == 3
    assert column_set.synced_at == SYNCED_AT


def test_values_are_stored_as_text():
    column_set = encode_batch([
        {"flag": True, "count": 3, "price": 19.99, "whole": 4.0, "tags": ["a", "b"]},
        {"flag": False, "count": 0, "price": 0.5},
    ])
    table = column_set.table
    assert table.column("flag").to_pylist() == ["true", "false"]
    assert table.column("count").to_pylist() == ["3", "0"]
    assert table.column("price").to_pylist() == ["19.99", "0.5"]
    assert table.column("whole").to_pylist() == ["4", ""]
    assert table.column("tags").to_pylist() == ['["a","b"]', ""]


@pytest.mark.parametrize("value, expected", [
    (None, ""),
    ("text", "text"),
    (True, "true"),
    (False, "false"),
    (10, "10"),
    (10.0, "10"),
    (1e-7, "0.0000001"),
    (1.5e20, "150000000000000000000"),
    (Decimal("12.50"), "12.50"),
    ({"a": 1}, '{"a":1}'),
])
def test_to_column_string(value, expected):
    assert to_column_string(value) == expected


def test_empty_batch_has_system_columns_only():
    column_set = encode([], [], [], synced_at=SYNCED_AT)
    assert column_set.is_empty
    assert column_set.table.num_rows == 0
    assert column_set.table.column_names == ["_record_id", "_sync_timestamp"]


def test_arrow_failure_becomes_encoding_error():
    flattened, all_columns, timestamp_columns = unify_records([{"id": 1}])
    with patch.object(BatchSchema, "to_arrow_schema", side_effect=pa.ArrowInvalid("bad schema")):
        with pytest.raises(EncodingError) as exc_info:
            encode(flattened, all_columns, timestamp_columns)
    assert str(exc_info.value).startswith("encode: failed to build column arrays")
