"""
Dynamic Parquet pipeline: raw records -> flatten/unify -> encode -> persist.

Every CRM field is captured as a column; nothing about the record shape has
to be declared up front. Each call is independent and keeps no state.
"""

import logging
import time

from sync_parquet.config.platforms import get_platform_config
from sync_parquet.encoder import encode, utc_now_iso
from sync_parquet.schema_info import empty_schema_info
from sync_parquet.transform import unify_records
from sync_parquet.writer import persist

logger = logging.getLogger(__name__)


def encode_records(records, platform, synced_at=None):
    """Flatten and encode a batch without touching storage."""
    transform_config = get_platform_config(platform)
    flattened, all_columns, timestamp_columns = unify_records(records, transform_config)
    return encode(flattened, all_columns, timestamp_columns, synced_at=synced_at)


def write_dynamic_parquet(bucket, destination, records, platform, synced_at=None):
    """
    Write raw API records to GCS as Parquet with a dynamic schema.

    Args:
        bucket (google.cloud.storage.Bucket): Analytics bucket
        destination (Destination): Target keys for this batch
        records (list): Raw JSON records from a CRM connector
        platform (str): Platform slug selecting the TransformConfig
        synced_at (str): ISO-8601 sync time, now if None

    Returns:
        SchemaInfo: Description of the written file

    Raises:
        PipelineError: TransformError, EncodingError or StorageError
    """
    synced_at = synced_at or utc_now_iso()
    if not records:
        logger.info(f"[PIPELINE] No records for {destination.object_type}, skipping write")
        return empty_schema_info(synced_at)

    start = time.time()
    column_set = encode_records(records, platform, synced_at=synced_at)
    schema_info = persist(column_set, destination, bucket)

    logger.info(
        f"[PIPELINE] Wrote {schema_info.record_count} {destination.object_type} records "
        f"with {len(schema_info.columns)} columns to {destination.data_key} "
        f"in {(time.time() - start) * 1000:.1f}ms",
        extra={
            'event': 'batch_written',
            'object_type': destination.object_type,
            'connection_id': destination.connection_id,
            'record_count': schema_info.record_count,
            'column_count': len(schema_info.columns),
            'gcs_path': destination.data_key,
        }
    )
    return schema_info
