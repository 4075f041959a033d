"""
Prometheus metrics module for the Lumexa booking core.

Service timings come from the @measure_operation decorator; the domain
counters below track the money and conduct events operators alert on.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "lumexa_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "lumexa_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "lumexa_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

payment_transitions_total = Counter(
    "lumexa_payment_transitions_total",
    "Booking payment status transitions",
    ["target"],  # CAPTURED | REFUNDED | FAILED
    registry=REGISTRY,
)

gateway_failures_total = Counter(
    "lumexa_gateway_failures_total",
    "Failed calls to the payment or video provider",
    ["provider", "operation"],
    registry=REGISTRY,
)

strikes_issued_total = Counter(
    "lumexa_strikes_issued_total",
    "Strikes issued to teachers",
    ["suspended"],  # "true" when the strike triggered a suspension
    registry=REGISTRY,
)

webhook_events_total = Counter(
    "lumexa_webhook_events_total",
    "Inbound webhook deliveries by outcome",
    ["source", "outcome"],  # processed | duplicate | rejected | failed | ignored
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

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
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_booking')
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

    @staticmethod
    def inc_payment_transition(target: str) -> None:
        payment_transitions_total.labels(target=target).inc()

    @staticmethod
    def inc_gateway_failure(provider: str, operation: str) -> None:
        gateway_failures_total.labels(provider=provider, operation=operation).inc()

    @staticmethod
    def inc_strike(suspended: bool) -> None:
        strikes_issued_total.labels(suspended="true" if suspended else "false").inc()

    @staticmethod
    def inc_webhook_event(source: str, outcome: str) -> None:
        webhook_events_total.labels(source=source, outcome=outcome).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
