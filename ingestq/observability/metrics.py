"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from ingestq.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_HANDLE_DURATION,
    METRIC_MESSAGES_RECEIVED,
    METRIC_MESSAGES_SENT,
    METRIC_PUBLISH_ATTEMPTS,
    METRIC_PUBLISH_FAILURES,
    METRIC_RECEIVE_FAILURES,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the ingestion queue.

    Collects metrics for:
    - Messages published and consumed
    - Publish attempts and terminal failures
    - Receive failures
    - Handler duration
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.messages_sent = Counter(
            METRIC_MESSAGES_SENT,
            "Total number of messages published to the queue",
            ["content_type"],
            registry=self._registry,
        )

        self.messages_received = Counter(
            METRIC_MESSAGES_RECEIVED,
            "Total number of messages claimed from the queue",
            ["worker_id"],
            registry=self._registry,
        )

        # One increment per send() call made by the publisher
        self.publish_attempts = Counter(
            METRIC_PUBLISH_ATTEMPTS,
            "Total number of send attempts made while publishing",
            ["outcome"],
            registry=self._registry,
        )

        self.publish_failures = Counter(
            METRIC_PUBLISH_FAILURES,
            "Total number of publishes abandoned",
            ["error"],
            registry=self._registry,
        )

        self.receive_failures = Counter(
            METRIC_RECEIVE_FAILURES,
            "Total number of failed receives",
            ["worker_id", "error"],
            registry=self._registry,
        )

        self.handle_duration = Histogram(
            METRIC_HANDLE_DURATION,
            "Message handler duration in seconds",
            ["worker_id", "status"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_message_sent(self, content_type: str) -> None:
        """Record a published message."""
        self.messages_sent.labels(content_type=content_type).inc()

    def record_message_received(self, worker_id: str) -> None:
        """Record a claimed message."""
        self.messages_received.labels(worker_id=worker_id).inc()

    def record_publish_attempt(self, success: bool) -> None:
        """Record one send attempt made by the publisher."""
        self.publish_attempts.labels(outcome="success" if success else "failure").inc()

    def record_publish_failure(self, error: str) -> None:
        """Record a publish that was abandoned."""
        self.publish_failures.labels(error=error).inc()

    def record_receive_failure(self, worker_id: str, error: str) -> None:
        """Record a failed receive."""
        self.receive_failures.labels(worker_id=worker_id, error=error).inc()

    def record_message_handled(
        self,
        worker_id: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a message passing through a handler."""
        self.handle_duration.labels(worker_id=worker_id, status=status).observe(
            duration_seconds
        )

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
