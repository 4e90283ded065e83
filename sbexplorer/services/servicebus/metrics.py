"""
Gateway Metrics Collection

Prometheus metrics for gateway operations: outcomes, latency, broker
sessions, and message throughput for peek, send and purge.

Author: SB Explorer Contributors
Date: 2026-10-16
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


class GatewayMetrics:
    """
    Prometheus metrics collector for gateway operations.

    Each instance owns its registry so instances can be recreated (tests,
    app factories) without duplicate-registration errors.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collectors.

        Args:
            registry: Prometheus registry (a fresh one if None)
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        # Operation outcomes
        self.operations_total = Counter(
            'sbexplorer_operations_total',
            'Total gateway operations',
            ['operation', 'outcome'],
            registry=self.registry
        )

        self.operation_errors_total = Counter(
            'sbexplorer_operation_errors_total',
            'Total failed gateway operations by error code',
            ['operation', 'error_code'],
            registry=self.registry
        )

        self.operation_duration_seconds = Histogram(
            'sbexplorer_operation_duration_seconds',
            'Gateway operation duration, session open to close',
            ['operation'],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=self.registry
        )

        # Broker sessions
        self.sessions_opened_total = Counter(
            'sbexplorer_sessions_opened_total',
            'Total broker sessions opened',
            registry=self.registry
        )

        self.session_close_failures_total = Counter(
            'sbexplorer_session_close_failures_total',
            'Total broker sessions whose release failed',
            registry=self.registry
        )

        # Message throughput
        self.messages_peeked_total = Counter(
            'sbexplorer_messages_peeked_total',
            'Total messages returned by peek operations',
            ['entity_type', 'sub_queue'],
            registry=self.registry
        )

        self.messages_sent_total = Counter(
            'sbexplorer_messages_sent_total',
            'Total messages sent',
            ['entity_type'],
            registry=self.registry
        )

        self.messages_purged_total = Counter(
            'sbexplorer_messages_purged_total',
            'Total messages removed by purge operations',
            ['sub_queue'],
            registry=self.registry
        )

    def track_operation(self, operation: str, duration: float, error_code: Optional[str] = None) -> None:
        """
        Track a completed gateway operation.

        Args:
            operation: Operation name (peek_messages, create_topic, etc.)
            duration: Operation duration in seconds
            error_code: Gateway error code when the operation failed
        """
        outcome = "error" if error_code else "success"
        self.operations_total.labels(operation=operation, outcome=outcome).inc()
        self.operation_duration_seconds.labels(operation=operation).observe(duration)
        if error_code:
            self.operation_errors_total.labels(operation=operation, error_code=error_code).inc()

    def track_session_opened(self) -> None:
        self.sessions_opened_total.inc()

    def track_session_close_failure(self) -> None:
        self.session_close_failures_total.inc()

    def track_messages_peeked(self, entity_type: str, sub_queue: str, count: int) -> None:
        """
        Track messages returned by a peek.

        Args:
            entity_type: Type of entity (queue/subscription)
            sub_queue: "main" or "deadletter"
            count: Number of messages returned
        """
        self.messages_peeked_total.labels(entity_type=entity_type, sub_queue=sub_queue).inc(count)

    def track_message_sent(self, entity_type: str) -> None:
        self.messages_sent_total.labels(entity_type=entity_type).inc()

    def track_messages_purged(self, sub_queue: str, count: int) -> None:
        self.messages_purged_total.labels(sub_queue=sub_queue).inc(count)

    def generate_metrics(self) -> bytes:
        """
        Generate Prometheus metrics output.

        Returns:
            Metrics in Prometheus text format
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Prometheus exposition content type."""
        return CONTENT_TYPE_LATEST


# Global metrics instance
_metrics: Optional[GatewayMetrics] = None


def get_metrics() -> GatewayMetrics:
    """
    Get global metrics instance (singleton).

    Returns:
        GatewayMetrics instance
    """
    global _metrics
    if _metrics is None:
        _metrics = GatewayMetrics()
    return _metrics


def reset_metrics() -> None:
    """Reset global metrics instance (for testing)."""
    global _metrics
    _metrics = None
