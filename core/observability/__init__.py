"""
Observability Module for the Reconciliation Engine

Provides:
- Structured logging with correlation IDs
- Metrics collection (reconstruction, balance, audits, processing times)
"""

from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_reconstruction,
    record_balance_resolved,
    record_processing_time,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
    log_stage,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "record_reconstruction",
    "record_balance_resolved",
    "record_processing_time",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    "log_stage",
]
