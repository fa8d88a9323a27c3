"""
Prometheus metrics for Therapport.

Service timings come from the ``@BaseService.measure_operation`` decorator;
ledger and webhook counters are recorded by the services that move money.
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so tests and multiple app instances never collide with the default one
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "therapport_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "therapport_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "therapport_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

credit_pence_total = Counter(
    "therapport_credit_pence_total",
    "Pence moved through the credit ledger",
    ["direction", "source_type"],
    registry=REGISTRY,
)

voucher_hours_total = Counter(
    "therapport_voucher_hours_total",
    "Voucher hours consumed or released",
    ["direction"],
    registry=REGISTRY,
)

bookings_total = Counter(
    "therapport_bookings_total",
    "Booking lifecycle outcomes",
    ["action", "outcome"],
    registry=REGISTRY,
)

webhook_events_total = Counter(
    "therapport_webhook_events_total",
    "Inbound webhook events by type and outcome",
    ["event_type", "outcome"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin static facade over the module-level collectors."""

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
            operation: Operation name (e.g., 'create_booking')
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
    def record_credit_movement(direction: str, amount_pence: int, source_type: str = "n/a") -> None:
        if amount_pence > 0:
            credit_pence_total.labels(direction=direction, source_type=source_type).inc(
                amount_pence
            )

    @staticmethod
    def record_voucher_movement(direction: str, hours: float) -> None:
        if hours > 0:
            voucher_hours_total.labels(direction=direction).inc(hours)

    @staticmethod
    def record_booking(action: str, outcome: str) -> None:
        bookings_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def record_webhook_event(event_type: str, outcome: str) -> None:
        webhook_events_total.labels(event_type=event_type or "unknown", outcome=outcome).inc()

    @staticmethod
    def get_metrics() -> bytes:
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST


prometheus_metrics = PrometheusMetrics()
