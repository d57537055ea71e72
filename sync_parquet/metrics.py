"""
Process-local sync metrics for observability.
"""

import time
from collections import defaultdict


class SyncMetrics:
    """Tracks batch processing metrics for the sync service."""

    def __init__(self, log_stats_every_n=100):
        self.log_stats_every_n = log_stats_every_n
        self.reset()

    def reset(self):
        """Reset metrics (useful for periodic reporting)."""
        self.start_time = time.time()
        self.total_batches = 0
        self.total_succeeded = 0
        self.total_failed = 0
        self.total_records = 0
        self.total_bytes_written = 0
        self.object_type_counts = defaultdict(lambda: defaultdict(int))
        self.errors_by_type = defaultdict(int)
        self.latencies = []

    def record_success(self, object_type: str, record_count: int, column_count: int,
                       size_bytes: int, start_time: float):
        """Record a successfully written batch."""
        self.total_batches += 1
        self.total_succeeded += 1
        self.total_records += record_count
        self.total_bytes_written += size_bytes
        self.object_type_counts[object_type]['success'] += 1
        self.object_type_counts[object_type]['records'] += record_count
        self.object_type_counts[object_type]['max_columns'] = max(
            self.object_type_counts[object_type]['max_columns'], column_count
        )
        self.latencies.append(time.time() - start_time)

    def record_failure(self, object_type: str, error_type: str):
        """Record a failed batch."""
        self.total_batches += 1
        self.total_failed += 1
        self.object_type_counts[object_type]['failed'] += 1
        self.errors_by_type[error_type] += 1

    def should_log_stats(self):
        """Check if we should log statistics."""
        return self.total_batches > 0 and self.total_batches % self.log_stats_every_n == 0

    def get_stats_summary(self):
        """Get comprehensive statistics summary."""
        elapsed = time.time() - self.start_time
        success_rate = (self.total_succeeded / self.total_batches * 100) if self.total_batches > 0 else 0
        avg_latency = sum(self.latencies) / len(self.latencies) if self.latencies else 0

        return {
            'total_batches': self.total_batches,
            'total_succeeded': self.total_succeeded,
            'total_failed': self.total_failed,
            'success_rate': f'{success_rate:.1f}%',
            'total_records': self.total_records,
            'total_bytes_written': self.total_bytes_written,
            'avg_latency_ms': f'{avg_latency * 1000:.1f}',
            'object_types': {name: dict(counts) for name, counts in self.object_type_counts.items()},
            'errors': dict(self.errors_by_type),
            'elapsed_seconds': f'{elapsed:.1f}',
        }
