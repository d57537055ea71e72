import io
import json
from unittest.mock import MagicMock

import pyarrow.parquet as pq
import pytest
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions

from sync_parquet.encoder import encode
from sync_parquet.errors import StorageError
from sync_parquet.transform import unify_records
from sync_parquet.writer import (
    JSON_CONTENT_TYPE,
    PARQUET_CONTENT_TYPE,
    Destination,
    persist,
    serialize_parquet,
)

SYNCED_AT = "2024-03-01T12:00:00Z"


@pytest.fixture
def destination():
    return Destination("acct-1", "conn-1", "contacts", "run-42", chunk_number=3, prefix="raw/")


def encoded(records):
    flattened, all_columns, timestamp_columns = unify_records(records)
    return encode(flattened, all_columns, timestamp_columns, synced_at=SYNCED_AT)


def test_destination_keys(destination):
    assert destination.data_key == "raw/acct-1/conn-1/contacts/run-42/chunk_003.parquet"
    assert destination.schema_key == "raw/acct-1/conn-1/contacts/run-42/schema.json"
    assert Destination("a", "c", "deals", "r").data_key == "a/c/deals/r/chunk_000.parquet"


def test_parquet_round_trip_keeps_schema_and_metadata(contact_records, destination):
    column_set = encoded(contact_records)
    data = serialize_parquet(column_set, destination)

    parquet_file = pq.ParquetFile(io.BytesIO(data))
    assert parquet_file.metadata.row_group(0).column(0).compression == "SNAPPY"

    table = pq.read_table(io.BytesIO(data))
    assert table.column_names == column_set.table.column_names
    assert table.column("first_name").to_pylist() == ["John", "Jane"]
    assert table.column("phone").to_pylist() == ["+1-555-0100", ""]

    metadata = table.schema.metadata
    assert metadata[b"record_count"] == b"2"
    assert metadata[b"synced_at"] == SYNCED_AT.encode()
    assert metadata[b"timestamp_columns"] == b"created_at"
    assert metadata[b"object_type"] == b"contacts"
    assert metadata[b"connection_id"] == b"conn-1"


def test_persist_uploads_data_then_schema(bucket, contact_records, destination):
    schema_info = persist(encoded(contact_records), destination, bucket)

    assert set(bucket.objects) == {destination.data_key, destination.schema_key}
    assert bucket.content_types[destination.data_key] == PARQUET_CONTENT_TYPE
    assert bucket.content_types[destination.schema_key] == JSON_CONTENT_TYPE
    assert schema_info.file_size_bytes == len(bucket.objects[destination.data_key])

    document = json.loads(bucket.objects[destination.schema_key])
    assert document["record_count"] == 2
    assert document["connection_id"] == "conn-1"
    assert document["object_type"] == "contacts"
    assert document["columns"]["timestamp_created_at"]["type"] == "date"

    for blob in bucket.blobs.values():
        for call in blob.upload_from_file.call_args_list + blob.upload_from_string.call_args_list:
            assert call.kwargs["retry"] is None


def test_empty_batch_writes_nothing(bucket, destination):
    schema_info = persist(encode([], [], [], synced_at=SYNCED_AT), destination, bucket)
    assert schema_info.record_count == 0
    assert schema_info.synced_at == SYNCED_AT
    assert bucket.objects == {}


def test_data_upload_failure_raises_storage_error(bucket, contact_records, destination):
    bucket.fail_on.add(destination.data_key)
    with pytest.raises(StorageError) as exc_info:
        persist(encoded(contact_records), destination, bucket)
    assert str(exc_info.value).startswith("storage: failed to upload")
    assert bucket.objects == {}


def test_schema_upload_failure_removes_data_file(bucket, contact_records, destination):
    bucket.fail_on.add(destination.schema_key)
    with pytest.raises(StorageError):
        persist(encoded(contact_records), destination, bucket)
    assert bucket.objects == {}
    bucket.blobs[destination.data_key].delete.assert_called_once()


def test_google_api_errors_are_wrapped(contact_records, destination):
    blob = MagicMock()
    blob.upload_from_file.side_effect = api_exceptions.ServiceUnavailable("try later")
    gcs_bucket = MagicMock()
    gcs_bucket.name = "analytics-test"
    gcs_bucket.blob.return_value = blob

    with pytest.raises(StorageError) as exc_info:
        persist(encoded(contact_records), destination, gcs_bucket)
    assert "try later" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, api_exceptions.ServiceUnavailable)


def test_auth_error_on_schema_upload_removes_data_file(bucket, contact_records, destination):
    bucket.errors[destination.schema_key] = auth_exceptions.RefreshError("token expired")
    with pytest.raises(StorageError) as exc_info:
        persist(encoded(contact_records), destination, bucket)
    assert str(exc_info.value).startswith("storage: failed to upload")
    assert isinstance(exc_info.value.__cause__, auth_exceptions.RefreshError)
    assert bucket.objects == {}
    bucket.blobs[destination.data_key].delete.assert_called_once()


def test_failed_rollback_still_raises_storage_error(bucket, contact_records, destination):
    bucket.errors[destination.schema_key] = auth_exceptions.TransportError("connection reset")
    original_blob = bucket.blob

    def blob_with_failing_delete(key):
        blob = original_blob(key)
        blob.delete.side_effect = auth_exceptions.RefreshError("token expired")
        return blob

    bucket.blob = blob_with_failing_delete
    with pytest.raises(StorageError):
        persist(encoded(contact_records), destination, bucket)
    assert destination.data_key in bucket.objects
