"""
Prometheus metrics module for MentorLink.

Service timings come from the @measure_operation decorator; the realtime
gateway and presence directory record their own counters and gauges.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "mentorlink_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "mentorlink_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "mentorlink_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

messages_sent_total = Counter(
    "mentorlink_messages_sent_total",
    "Messages persisted by the messaging API",
    ["message_type"],
    registry=REGISTRY,
)

realtime_connections_active = Gauge(
    "mentorlink_realtime_connections_active",
    "Realtime connections currently held by this instance",
    registry=REGISTRY,
)

realtime_events_total = Counter(
    "mentorlink_realtime_events_total",
    "Realtime events handled by the gateway",
    ["event", "direction"],  # direction: inbound | outbound
    registry=REGISTRY,
)

presence_failures_total = Counter(
    "mentorlink_presence_failures_total",
    "Presence directory operations that failed or timed out",
    ["operation"],
    registry=REGISTRY,
)

relay_publishes_total = Counter(
    "mentorlink_relay_publishes_total",
    "Envelopes published to the cross-instance relay",
    ["kind", "status"],  # status: success | error
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'MessageService')
            operation: Operation/method name (e.g., 'send_message')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_message_sent(message_type: str) -> None:
        messages_sent_total.labels(message_type=message_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def set_realtime_connections(count: int) -> None:
        realtime_connections_active.set(count)
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_realtime_event(event: str, direction: str) -> None:
        realtime_events_total.labels(event=event, direction=direction).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_presence_failure(operation: str) -> None:
        presence_failures_total.labels(operation=operation).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_relay_publish(kind: str, status: str) -> None:
        relay_publishes_total.labels(kind=kind, status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts

        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        """Invalidate cached metrics so next scrape refreshes."""
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


# Singleton instance
prometheus_metrics = PrometheusMetrics()
