"""
Monitoring and metrics API endpoints.

This blueprint provides:
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
- /health: Basic health check
"""

import time
from importlib.metadata import PackageNotFoundError, version

from flask import Blueprint, Response, jsonify

from api.state import services
from monitoring import metrics

monitoring_bp = Blueprint('monitoring', __name__)

# Track startup time
_startup_time = time.time()


@monitoring_bp.route('/metrics', methods=['GET'])
def prometheus_metrics():
    """
    Prometheus-compatible metrics endpoint.

    Returns metrics in Prometheus text exposition format.
    """
    _update_dynamic_metrics()
    return Response(metrics.to_prometheus(), mimetype='text/plain; charset=utf-8')


@monitoring_bp.route('/metrics/json', methods=['GET'])
def json_metrics():
    """Return all collected metrics as JSON."""
    _update_dynamic_metrics()
    return jsonify(metrics.get_all())


@monitoring_bp.route('/health', methods=['GET'])
def health():
    """
    Basic health check endpoint.

    Reports whether a court is loaded and its current term.
    """
    court = services.court
    checks = {"court": {"status": "ok" if court else "unavailable", "available": court is not None}}
    if court:
        checks["court"]["last_ensured_term_id"] = court.clock.get_last_ensured_term_id()
        checks["court"]["needed_transitions"] = court.clock.get_needed_term_transitions()

    return jsonify({
        "status": "healthy" if court else "degraded",
        "service": "StakeCourt API",
        "version": _get_version(),
        "uptime_seconds": time.time() - _startup_time,
        "checks": checks,
    })


def _get_version() -> str:
    """Get application version from package metadata."""
    try:
        return version("stakecourt")
    except PackageNotFoundError:
        return "0.1.0"


def _update_dynamic_metrics():
    """Update court gauges before export."""
    court = services.court
    if court is None:
        return
    term_id = court.clock.get_last_ensured_term_id()
    metrics.set_gauge("current_term_id", term_id)
    metrics.set_gauge("total_active_balance", court.registry.total_active_balance_at(term_id))
    metrics.set_gauge("disputes_total", len(court.coordinator.list_rounds()))
