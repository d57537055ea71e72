"""
Schema inference monitoring through Cloud Logging.
One structured entry per written batch makes schema growth queryable.
"""

import logging
from datetime import datetime, timezone

from google.cloud import logging as cloud_logging

from sync_parquet.encoder import TIMESTAMP_COLUMN_PREFIX

logger = logging.getLogger(__name__)

WIDE_SCHEMA_COLUMNS = 500


class SchemaMonitor:
    """Log inferred batch schemas to Cloud Logging with structured data"""

    def __init__(self, project_id, client=None):
        try:
            self.logging_client = client or cloud_logging.Client(project=project_id)
            self.logger = self.logging_client.logger('schema-inference')
            self.enabled = True
            logger.info("[MONITOR] Schema monitoring enabled")
        except Exception as e:
            logger.warning(f"[MONITOR] Could not initialize monitoring: {e}")
            self.enabled = False
            self.logger = None

    def log_schema(self, object_type, connection_id, schema_info, gcs_path=None):
        """Write one structured entry describing an inferred schema."""
        if not self.enabled or not self.logger:
            return

        timestamp_columns = sorted(
            name for name in schema_info.columns if name.startswith(TIMESTAMP_COLUMN_PREFIX)
        )
        column_count = len(schema_info.columns)
        severity = 'WARNING' if column_count > WIDE_SCHEMA_COLUMNS else 'INFO'
        entry = {
            'message': f"Inferred {column_count} columns for {object_type}",
            'object_type': object_type,
            'connection_id': connection_id,
            'record_count': schema_info.record_count,
            'column_count': column_count,
            'timestamp_columns': timestamp_columns,
            'synced_at': schema_info.synced_at,
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }
        if gcs_path:
            entry['gcs_path'] = gcs_path

        try:
            self.logger.log_struct(entry, severity=severity)
        except Exception as e:
            # monitoring must never fail a batch that was already written
            logger.warning(f"[MONITOR] Failed to log to Cloud Logging: {e}")
