"""
Metrics Collection with Prometheus.

Exposes receipt verification metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Histogram, Info

from apple_receipts.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    PRODUCT_TYPE = "product_type"
    OUTCOME = "outcome"
    STATUS = "status"
    ERROR_TYPE = "error_type"


class VerificationOutcome(str, Enum):
    """Outcome label for one verification attempt."""

    VALIDATED = "validated"
    NOT_VALIDATED = "not_validated"
    UNCHECKED = "unchecked"
    UNUSABLE = "unusable"


class ReceiptMetrics:
    """
    Centralized metrics for receipt verification.

    Covers:
    - Verification attempts by outcome
    - Provider status codes received
    - Provider call failures
    - Verification duration
    """

    def __init__(self, enabled: bool = True) -> None:
        """Initialize all Prometheus metrics."""
        self.enabled = enabled

        self.service_info = Info(
            "apple_receipt_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.service_version,
                "service_name": settings.service_name,
            }
        )

        self.verifications_total = Counter(
            "apple_receipt_verifications_total",
            "Total receipt verification attempts",
            [MetricLabels.PRODUCT_TYPE.value, MetricLabels.OUTCOME.value],
        )

        self.provider_status_total = Counter(
            "apple_receipt_provider_status_total",
            "Status codes returned by verifyReceipt",
            [MetricLabels.STATUS.value],
        )

        self.provider_errors_total = Counter(
            "apple_receipt_provider_errors_total",
            "Failed verifyReceipt calls",
            [MetricLabels.ERROR_TYPE.value],
        )

        self.verification_duration_seconds = Histogram(
            "apple_receipt_verification_duration_seconds",
            "Receipt verification duration in seconds",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_verification(
        self, product_type: str, outcome: VerificationOutcome, duration: float
    ) -> None:
        """Record one finished verification attempt."""
        if not self.enabled:
            return
        self.verifications_total.labels(product_type=product_type, outcome=outcome.value).inc()
        self.verification_duration_seconds.observe(duration)

    def record_provider_status(self, status: int | None) -> None:
        """Record the status code of a provider reply."""
        if not self.enabled:
            return
        self.provider_status_total.labels(
            status="missing" if status is None else str(status)
        ).inc()

    def record_provider_error(self, error_type: str) -> None:
        """Record a failed provider call."""
        if not self.enabled:
            return
        self.provider_errors_total.labels(error_type=error_type).inc()


# Global metrics instance
metrics = ReceiptMetrics(enabled=settings.metrics_enabled)
