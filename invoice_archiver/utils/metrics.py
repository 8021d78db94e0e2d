"""
Metrics Collection Module
Tracks what a single archive run did
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Deque


@dataclass
class RunMetrics:
    """
    Collects operational metrics for one batch run.

    The summary is logged when the run ends; a run that fetched messages but
    archived none is the signal to look at the error counts.
    """

    messages_fetched: int = 0
    messages_selected: int = 0
    messages_archived: int = 0
    messages_failed: int = 0
    attachments_saved: int = 0
    attachments_failed: int = 0

    # Count of errors by exception type
    errors_count: Counter = field(default_factory=Counter)

    # Per-message processing time; bounded so a huge batch cannot grow it without limit
    processing_time_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=1000))

    start_time: datetime = field(default_factory=datetime.now)

    def record_archived(self, attachments_saved: int = 0, attachments_failed: int = 0):
        """Record a message whose summary record was written."""
        self.messages_archived += 1
        self.attachments_saved += attachments_saved
        self.attachments_failed += attachments_failed

    def record_failure(self, error_type: str):
        """
        Record a message that could not be archived.

        Args:
            error_type: Exception class name (e.g., "RenderError")
        """
        self.messages_failed += 1
        self.errors_count[error_type] += 1

    def record_processing_time(self, time_ms: float):
        self.processing_time_ms.append(time_ms)

    def get_summary(self) -> Dict:
        """
        Get a summary of all metrics.

        Returns:
            Dictionary suitable for logging
        """
        stats = {}
        if self.processing_time_ms:
            sorted_times = sorted(self.processing_time_ms)
            n = len(sorted_times)
            stats = {
                "avg_ms": sum(sorted_times) / n,
                "min_ms": sorted_times[0],
                "max_ms": sorted_times[-1],
                "p50_ms": sorted_times[n // 2],
            }

        return {
            "duration_seconds": (datetime.now() - self.start_time).total_seconds(),
            "messages_fetched": self.messages_fetched,
            "messages_selected": self.messages_selected,
            "messages_archived": self.messages_archived,
            "messages_failed": self.messages_failed,
            "attachments_saved": self.attachments_saved,
            "attachments_failed": self.attachments_failed,
            "errors": dict(self.errors_count),
            "processing_time_stats": stats,
        }
