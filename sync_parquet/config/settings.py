#!/usr/bin/env python3
# settings.py - Configuration management for the dynamic Parquet sync service

import os
import logging

logger = logging.getLogger(__name__)


def _env_flag(name, default='false'):
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Configuration class with all settings for the sync service."""

    def __init__(self):
        logger.info("="*50)
        logger.info("📋 Loading Configuration")
        logger.info("="*50)

        # === GCP Configuration ===
        self.PROJECT_ID = os.getenv('PROJECT_ID')
        self.GCS_ANALYTICS_BUCKET_NAME = os.getenv('GCS_ANALYTICS_BUCKET_NAME')
        self.OUTPUT_PREFIX = os.getenv('OUTPUT_PREFIX', '')
        logger.info(f"  🌍 GCP Project: {self.PROJECT_ID}")
        logger.info(f"  🪣 Analytics Bucket: {self.GCS_ANALYTICS_BUCKET_NAME}")
        logger.info(f"  🪣 Output Prefix: {self.OUTPUT_PREFIX or '(none)'}")

        # === Batch Settings ===
        self.MAX_BATCH_RECORDS = int(os.getenv('MAX_BATCH_RECORDS', '10000'))
        self.DEFAULT_PLATFORM = os.getenv('DEFAULT_PLATFORM', 'default')
        logger.info(f"  📦 Max Batch Records: {self.MAX_BATCH_RECORDS}")
        logger.info(f"  📦 Default Platform: {self.DEFAULT_PLATFORM}")

        # === Monitoring Configuration ===
        self.LOG_STATS_EVERY_N = int(os.getenv('LOG_STATS_EVERY_N', '100'))
        logger.info(f"  📊 Log Stats Every: {self.LOG_STATS_EVERY_N} batches")

        # === Feature Flags ===
        self.ENABLE_CLOUD_LOGGING = _env_flag('ENABLE_CLOUD_LOGGING')
        self.ENABLE_SCHEMA_MONITORING = _env_flag('ENABLE_SCHEMA_MONITORING')
        self.ENABLE_DETAILED_LOGGING = _env_flag('ENABLE_DETAILED_LOGGING')

        logger.info("  🎛️ Feature Flags:")
        logger.info(f"    - Cloud Logging: {'✅ Enabled' if self.ENABLE_CLOUD_LOGGING else '❌ Disabled'}")
        logger.info(f"    - Schema Monitoring: {'✅ Enabled' if self.ENABLE_SCHEMA_MONITORING else '❌ Disabled'}")
        logger.info(f"    - Detailed Logging: {'✅ Enabled' if self.ENABLE_DETAILED_LOGGING else '❌ Disabled'}")

        # === Validation ===
        try:
            self._validate_config()
            logger.info("✅ Configuration validation passed")
        except ValueError as e:
            logger.error(f"❌ Configuration validation failed: {e}")
            raise

    def _validate_config(self):
        """Validate numeric ranges and warn about missing optional settings."""
        validations = [
            (self.MAX_BATCH_RECORDS > 0, "MAX_BATCH_RECORDS must be > 0"),
            (self.LOG_STATS_EVERY_N > 0, "LOG_STATS_EVERY_N must be > 0"),
        ]
        for condition, error_message in validations:
            if not condition:
                raise ValueError(error_message)

        if not self.GCS_ANALYTICS_BUCKET_NAME:
            logger.warning("  ⚠️ GCS_ANALYTICS_BUCKET_NAME not set - batches will be rejected")

        if self.ENABLE_SCHEMA_MONITORING and not self.PROJECT_ID:
            logger.warning("  ⚠️ Schema monitoring requested without PROJECT_ID - it will stay disabled")

        if self.MAX_BATCH_RECORDS > 100000:
            logger.warning(f"  ⚠️ Very large batch limit ({self.MAX_BATCH_RECORDS}) may cause memory issues")

    def get_summary(self) -> dict:
        """Get configuration summary for logging and monitoring."""
        return {
            'project_id': self.PROJECT_ID,
            'gcs_bucket': self.GCS_ANALYTICS_BUCKET_NAME,
            'output_prefix': self.OUTPUT_PREFIX,
            'max_batch_records': self.MAX_BATCH_RECORDS,
            'default_platform': self.DEFAULT_PLATFORM,
            'log_stats_every_n': self.LOG_STATS_EVERY_N,
            'features': {
                'cloud_logging': self.ENABLE_CLOUD_LOGGING,
                'schema_monitoring': self.ENABLE_SCHEMA_MONITORING,
                'detailed_logging': self.ENABLE_DETAILED_LOGGING,
            },
        }
