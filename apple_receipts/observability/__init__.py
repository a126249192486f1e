"""
Observability module - Logging and Metrics.
"""

from apple_receipts.observability.logging import get_logger, log_context, setup_logging
from apple_receipts.observability.metrics import metrics

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
]
