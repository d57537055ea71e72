"""
Parquet persistence to GCS.

Serializes an encoded batch with Snappy compression, uploads it, then uploads
the schema.json side-car next to it. Uploads are made with retry=None:
retrying a failed batch is the caller's job.
"""

import io
import logging
import time

import pyarrow as pa
import pyarrow.parquet as pq
from google.api_core import exceptions as api_exceptions

from sync_parquet.errors import StorageError
from sync_parquet.schema_info import build_schema_info, empty_schema_info

logger = logging.getLogger(__name__)

PARQUET_CONTENT_TYPE = 'application/octet-stream'
JSON_CONTENT_TYPE = 'application/json'
SCHEMA_FILENAME = 'schema.json'
PARQUET_COMPRESSION = 'snappy'
SLOW_UPLOAD_SECONDS = 2.0


class Destination:
    """Where one batch lands in the analytics bucket."""

    def __init__(self, account_id, connection_id, object_type, sync_run_id,
                 chunk_number=0, prefix=''):
        self.account_id = account_id
        self.connection_id = connection_id
        self.object_type = object_type
        self.sync_run_id = sync_run_id
        self.chunk_number = chunk_number
        self.prefix = prefix.strip('/')

    @property
    def directory(self):
        parts = [self.prefix, self.account_id, self.connection_id, self.object_type, self.sync_run_id]
        return '/'.join(str(part) for part in parts if part)

    @property
    def data_key(self):
        return f"{self.directory}/chunk_{self.chunk_number:03d}.parquet"

    @property
    def schema_key(self):
        return f"{self.directory}/{SCHEMA_FILENAME}"

    def __repr__(self):
        return f"Destination({self.data_key!r})"


def serialize_parquet(column_set, destination=None):
    """
    Write the batch table to Snappy-compressed Parquet bytes.

    The Arrow schema is stored in the file footer along with batch metadata.

    Raises:
        StorageError: If pyarrow cannot serialize the table
    """
    table = column_set.table
    metadata = {
        b'record_count': str(column_set.record_count).encode(),
        b'synced_at': str(column_set.synced_at).encode(),
        b'timestamp_columns': ','.join(column_set.schema.timestamp_columns).encode(),
    }
    if destination is not None:
        metadata[b'object_type'] = str(destination.object_type).encode()
        metadata[b'connection_id'] = str(destination.connection_id).encode()
    existing_metadata = table.schema.metadata or {}
    table = table.replace_schema_metadata({**existing_metadata, **metadata})

    buffer = io.BytesIO()
    try:
        pq.write_table(table, buffer, compression=PARQUET_COMPRESSION)
    except (pa.ArrowException, OSError) as e:
        raise StorageError(f"failed to serialize parquet: {e}") from e
    data = buffer.getvalue()
    logger.info(f"[PARQUET] Serialized {table.num_rows} rows into {len(data)} bytes")
    return data


def _upload(bucket, key, data, content_type):
    start = time.time()
    blob = bucket.blob(key)
    try:
        if isinstance(data, bytes):
            blob.upload_from_file(io.BytesIO(data), content_type=content_type, retry=None)
        else:
            blob.upload_from_string(data, content_type=content_type, retry=None)
    except (api_exceptions.GoogleAPIError, OSError) as e:
        duration = time.time() - start
        logger.error(
            f"[GCS_UPLOAD] Failed to upload gs://{bucket.name}/{key}: {e}",
            extra={
                'event': 'gcs_write_failure',
                'gcs_path': key,
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': duration,
            }
        )
        raise StorageError(f"failed to upload to gs://{bucket.name}/{key}: {e}") from e
    except Exception as e:
        # auth refresh and transport errors sit outside GoogleAPIError
        duration = time.time() - start
        logger.error(
            f"[GCS_UPLOAD] Unexpected error uploading gs://{bucket.name}/{key}: {e}",
            extra={
                'event': 'gcs_write_unexpected_error',
                'gcs_path': key,
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': duration,
            }
        )
        raise StorageError(f"failed to upload to gs://{bucket.name}/{key}: {e}") from e

    duration = time.time() - start
    logger.info(
        f"[GCS_UPLOAD] Uploaded {len(data)} bytes to gs://{bucket.name}/{key} in {duration * 1000:.1f}ms",
        extra={'event': 'gcs_write_success', 'gcs_path': key, 'size_bytes': len(data),
               'gcs_latency_ms': duration * 1000}
    )
    if duration > SLOW_UPLOAD_SECONDS:
        logger.warning(f"[GCS_UPLOAD] Slow GCS write: {duration:.2f}s for {key}")
    return blob


def _rollback(blob, key):
    try:
        blob.delete()
        logger.warning(f"[GCS_UPLOAD] Removed {key} after schema upload failure")
    except (api_exceptions.GoogleAPIError, OSError) as e:
        logger.error(f"[GCS_UPLOAD] Could not remove {key} after schema upload failure: {e}")
    except Exception as e:
        logger.error(
            f"[GCS_UPLOAD] Unexpected error removing {key} after schema upload failure: {e}",
            extra={'event': 'gcs_rollback_failure', 'gcs_path': key, 'error_type': type(e).__name__}
        )


def persist(column_set, destination, bucket):
    """
    Upload an encoded batch and its schema document.

    Args:
        column_set (ColumnSet): Encoded batch
        destination (Destination): Target keys
        bucket (google.cloud.storage.Bucket): Analytics bucket

    Returns:
        SchemaInfo: Description of what was written. An empty batch returns
        a zero-record SchemaInfo and writes nothing.

    Raises:
        StorageError: If serialization or either upload fails. When the
        schema upload fails the Parquet object is removed again.
    """
    if column_set.is_empty:
        logger.info(f"[PERSIST] Empty batch for {destination.object_type}, nothing written")
        return empty_schema_info(column_set.synced_at)

    data = serialize_parquet(column_set, destination)
    data_blob = _upload(bucket, destination.data_key, data, PARQUET_CONTENT_TYPE)

    schema_info = build_schema_info(column_set)
    schema_info.file_size_bytes = len(data)
    document = schema_info.to_json(destination.connection_id, destination.object_type)
    try:
        _upload(bucket, destination.schema_key, document, JSON_CONTENT_TYPE)
    except StorageError:
        _rollback(data_blob, destination.data_key)
        raise

    return schema_info
