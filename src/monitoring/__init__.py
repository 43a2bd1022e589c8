"""
Monitoring and metrics infrastructure for StakeCourt.

This package provides:
- Court metrics collection (counters, gauges, histograms)
- Structured logging with JSON output
- Request timing middleware for the HTTP API

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("drafts_total")
    metrics.timing("draft_duration_ms", 4.2)

    logger = get_logger(__name__)
    logger.info("Juror activated", extra={"juror": "0xjuror1"})
"""

from monitoring.logging import LoggingContext, configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics
from monitoring.middleware import counted, setup_request_logging, timed

__all__ = [
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
    "LoggingContext",
    "setup_request_logging",
    "timed",
    "counted",
]
