"""
Prometheus metrics collection for keystore.
"""

from typing import Optional
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    REGISTRY,
    generate_latest,
)


class KeyStoreMetrics:
    """Centralized key store metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.operations_total = Counter(
            'keystore_operations_total',
            'Total key store operations',
            ['backend', 'operation', 'status'],
            registry=self.registry
        )

        self.operation_duration = Histogram(
            'keystore_operation_duration_seconds',
            'Key store operation duration in seconds',
            ['backend', 'operation'],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self.registry
        )

        # Backend health
        self.backend_up = Gauge(
            'keystore_backend_up',
            'Backend liveness (1 = up, 0 = down)',
            ['backend'],
            registry=self.registry
        )

        self.status_latency = Gauge(
            'keystore_status_latency_seconds',
            'Round-trip latency of the last successful liveness probe',
            ['backend'],
            registry=self.registry
        )

    def record_operation(self, backend: str, operation: str, status: str, duration: float):
        """Record a key store operation."""
        self.operations_total.labels(
            backend=backend,
            operation=operation,
            status=status
        ).inc()

        self.operation_duration.labels(
            backend=backend,
            operation=operation
        ).observe(duration)

    def set_backend_status(self, backend: str, is_up: bool, latency: Optional[float] = None):
        """Set backend liveness and, when known, the probe latency."""
        self.backend_up.labels(backend=backend).set(1 if is_up else 0)
        if latency is not None:
            self.status_latency.labels(backend=backend).set(latency)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus format."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics: Optional[KeyStoreMetrics] = None


def get_metrics_collector() -> KeyStoreMetrics:
    """Get the global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = KeyStoreMetrics()
    return _metrics
