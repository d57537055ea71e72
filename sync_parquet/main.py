"""
Cloud Run sync writer service.
Receives CRM record batches through Pub/Sub push and writes them to GCS as
dynamic-schema Parquet plus schema.json.
"""

import base64
import json
import logging
import os
import time
import uuid
from datetime import datetime, timezone

from flask import Flask, jsonify, request
import google.cloud.logging
from google.cloud import storage

from sync_parquet.config.platforms import PLATFORM_TRANSFORM_CONFIGS, get_available_platforms
from sync_parquet.config.settings import Config
from sync_parquet.errors import PipelineError, TransformError
from sync_parquet.metrics import SyncMetrics
from sync_parquet.monitoring import SchemaMonitor
from sync_parquet.pipeline import write_dynamic_parquet
from sync_parquet.writer import Destination

LOG_FORMAT = '%(asctime)s.%(msecs)03d - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s'


def setup_logging(use_cloud_logging):
    """Structured Cloud Logging in production, plain formatting otherwise."""
    if use_cloud_logging:
        try:
            google.cloud.logging.Client().setup_logging()
            logging.getLogger().setLevel(logging.INFO)
            return
        except Exception as e:
            print(f"[STARTUP] Cloud Logging unavailable, using standard logging: {e}")
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')


setup_logging(os.getenv('ENABLE_CLOUD_LOGGING', 'false').lower() == 'true')
logger = logging.getLogger('sync-parquet-writer')

config = Config()
metrics = SyncMetrics(log_stats_every_n=config.LOG_STATS_EVERY_N)
schema_monitor = None
if config.ENABLE_SCHEMA_MONITORING and config.PROJECT_ID:
    schema_monitor = SchemaMonitor(config.PROJECT_ID)

app = Flask(__name__)

_storage_client = None


def get_bucket():
    """Analytics bucket handle, with the storage client created on first use."""
    global _storage_client
    if _storage_client is None:
        _storage_client = storage.Client()
    return _storage_client.bucket(config.GCS_ANALYTICS_BUCKET_NAME)


def new_sync_run_id():
    now = datetime.now(timezone.utc)
    return f"{now.strftime('%Y%m%dT%H%M%SZ')}-{uuid.uuid4().hex[:8]}"


def decode_pubsub_envelope(envelope):
    """
    Extract the JSON payload from a Pub/Sub push envelope.
    Handles publishers that wrap their payload in a second message envelope.

    Raises:
        ValueError: If the envelope or its data is malformed
    """
    if not isinstance(envelope, dict) or 'message' not in envelope:
        raise ValueError("invalid Pub/Sub message format")
    message = envelope['message']
    if not isinstance(message, dict) or 'data' not in message:
        raise ValueError("no data in Pub/Sub message")

    payload = json.loads(base64.b64decode(message['data']).decode('utf-8'))
    if isinstance(payload, dict) and isinstance(payload.get('message'), dict) and 'data' in payload['message']:
        logger.info("[PUBSUB_HANDLER] Detected nested payload, extracting inner data")
        payload = json.loads(base64.b64decode(payload['message']['data']).decode('utf-8'))
    return payload


def parse_sync_batch(payload):
    """
    Validate a sync batch payload.

    Returns:
        tuple: (Destination, records, platform)

    Raises:
        ValueError: If required fields are missing or malformed
    """
    if not isinstance(payload, dict):
        raise ValueError("sync batch must be a JSON object")

    missing = [key for key in ('account_id', 'connection_id', 'object_type') if not payload.get(key)]
    if missing:
        raise ValueError(f"missing required fields: {', '.join(missing)}")

    records = payload.get('records', [])
    if not isinstance(records, list):
        raise ValueError("records must be a list")

    try:
        chunk_number = int(payload.get('chunk_number') or 0)
    except (TypeError, ValueError):
        raise ValueError("chunk_number must be an integer")

    destination = Destination(
        account_id=payload['account_id'],
        connection_id=payload['connection_id'],
        object_type=payload['object_type'],
        sync_run_id=payload.get('sync_run_id') or new_sync_run_id(),
        chunk_number=chunk_number,
        prefix=config.OUTPUT_PREFIX,
    )
    platform = payload.get('platform') or config.DEFAULT_PLATFORM
    return destination, records, platform


@app.route("/", methods=["POST"])
def handle_pubsub():
    """Handle Pub/Sub push messages carrying one sync batch each."""
    try:
        payload = decode_pubsub_envelope(request.get_json(silent=True))
        destination, records, platform = parse_sync_batch(payload)
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"[PUBSUB_HANDLER] Bad Request: {e}")
        return jsonify({'error': f"Bad Request: {e}"}), 400

    if len(records) > config.MAX_BATCH_RECORDS:
        logger.warning(
            f"[PUBSUB_HANDLER] Rejecting batch of {len(records)} records "
            f"(limit {config.MAX_BATCH_RECORDS})"
        )
        return jsonify({'error': f"batch exceeds {config.MAX_BATCH_RECORDS} records"}), 413

    if not config.GCS_ANALYTICS_BUCKET_NAME:
        logger.error("[PUBSUB_HANDLER] GCS_ANALYTICS_BUCKET_NAME not configured")
        return jsonify({'error': 'analytics bucket not configured'}), 500

    if config.ENABLE_DETAILED_LOGGING:
        logger.info(
            f"[PUBSUB_HANDLER] Batch for {destination.object_type}: {len(records)} records, "
            f"platform={platform}, connection={destination.connection_id}"
        )

    start = time.time()
    try:
        schema_info = write_dynamic_parquet(get_bucket(), destination, records, platform)
    except TransformError as e:
        # ACK bad record data so Pub/Sub routes it to the DLQ instead of redelivering
        metrics.record_failure(destination.object_type, type(e).__name__)
        logger.error(
            f"[PUBSUB_HANDLER] Unrecoverable batch for {destination.object_type}: {e}",
            extra={
                'event': 'batch_rejected',
                'object_type': destination.object_type,
                'connection_id': destination.connection_id,
                'error_type': type(e).__name__,
                'action': 'send_to_dlq',
            }
        )
        return jsonify({'status': 'rejected', 'error': str(e)}), 200
    except PipelineError as e:
        metrics.record_failure(destination.object_type, type(e).__name__)
        logger.error(
            f"[PUBSUB_HANDLER] Failed to write batch for {destination.object_type}: {e}",
            extra={
                'event': 'batch_failed',
                'object_type': destination.object_type,
                'connection_id': destination.connection_id,
                'error_type': type(e).__name__,
            },
            exc_info=True
        )
        return jsonify({'error': str(e)}), 500

    if schema_info.record_count == 0:
        return jsonify({'status': 'empty', 'record_count': 0}), 200

    metrics.record_success(
        object_type=destination.object_type,
        record_count=schema_info.record_count,
        column_count=len(schema_info.columns),
        size_bytes=schema_info.file_size_bytes,
        start_time=start,
    )
    if schema_monitor:
        schema_monitor.log_schema(
            destination.object_type, destination.connection_id, schema_info, destination.data_key
        )
    if metrics.should_log_stats():
        stats = metrics.get_stats_summary()
        logger.info(
            f"📊 Processing statistics - Batches: {stats['total_batches']} - "
            f"Success rate: {stats['success_rate']} - Records: {stats['total_records']}",
            extra={'event': 'statistics_summary', **stats}
        )

    return jsonify({
        'status': 'written',
        'data_key': destination.data_key,
        'schema_key': destination.schema_key,
        'record_count': schema_info.record_count,
        'column_count': len(schema_info.columns),
    }), 200


@app.route("/health")
def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "sync-parquet-writer",
        "gcs_bucket": config.GCS_ANALYTICS_BUCKET_NAME,
        "schema_monitoring": "enabled" if (schema_monitor and schema_monitor.enabled) else "disabled",
        "metrics": metrics.get_stats_summary(),
    }, 200


@app.route("/debug")
def debug_info():
    """Debug endpoint to check configuration"""
    return {
        "service": "sync-parquet-writer",
        "config": config.get_summary(),
        "available_platforms": get_available_platforms(),
        "platform_configs": {
            name: platform_config.to_dict()
            for name, platform_config in PLATFORM_TRANSFORM_CONFIGS.items()
        },
    }, 200


if __name__ == "__main__":
    logger.info("[STARTUP] Starting sync Parquet writer service...")
    logger.info(f"[STARTUP] Available platforms: {get_available_platforms()}")
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 8080)))
