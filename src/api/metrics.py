"""Metrics service for tracking API performance.

Singleton service counting engine calls and their latency per operation
(forecast, recommend, demand, ...).
"""

import threading
from typing import Dict


class _OperationStats:
    __slots__ = ("count", "errors", "total_ms", "min_ms", "max_ms")

    def __init__(self):
        self.count = 0
        self.errors = 0
        self.total_ms = 0.0
        self.min_ms = float("inf")
        self.max_ms = 0.0

    def as_dict(self) -> Dict:
        avg = self.total_ms / self.count if self.count > 0 else 0.0
        return {
            "count": self.count,
            "errors": self.errors,
            "average_latency_ms": round(avg, 2),
            "min_latency_ms": round(self.min_ms, 2) if self.min_ms != float("inf") else 0.0,
            "max_latency_ms": round(self.max_ms, 2),
        }


class MetricsService:
    """Singleton service for tracking API metrics.

    Thread-safe counters and latency tracking per engine operation.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._operations: Dict[str, _OperationStats] = {}
        self._initialized = True

    def record_inference(self, operation: str, latency_ms: float) -> None:
        """Record a successful call with its latency.

        Args:
            operation: Name of the engine operation
            latency_ms: Latency in milliseconds
        """
        with self._lock:
            stats = self._operations.setdefault(operation, _OperationStats())
            stats.count += 1
            stats.total_ms += latency_ms
            stats.min_ms = min(stats.min_ms, latency_ms)
            stats.max_ms = max(stats.max_ms, latency_ms)

    def record_error(self, operation: str) -> None:
        with self._lock:
            self._operations.setdefault(operation, _OperationStats()).errors += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with:
            - inference_count: Total number of successful calls
            - operations: Per-operation count, errors and latency stats
        """
        with self._lock:
            return {
                "inference_count": sum(s.count for s in self._operations.values()),
                "operations": {
                    name: stats.as_dict()
                    for name, stats in sorted(self._operations.items())
                },
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._operations = {}


# Global singleton instance
metrics_service = MetricsService()
