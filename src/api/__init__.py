"""
StakeCourt API Package.

Flask blueprints exposing the court over HTTP.

Blueprints:
- court: Terms, juror balances, dispute rounds and drafting
- monitoring: Health check and metrics
"""

from flask import Flask

from api.court_routes import court_bp
from api.monitoring import monitoring_bp
from api.state import init_court, services
from court import Court
from monitoring import setup_request_logging

# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (court_bp, ''),
    (monitoring_bp, ''),
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def create_app(court: Court | None = None, init: bool = True) -> Flask:
    """
    Create the Flask application.

    Args:
        court: Court to serve; a new one is built from the environment if None
        init: Build a court when none is given
    """
    app = Flask(__name__)
    if court is not None:
        services.court = court
    elif init:
        init_court()

    register_blueprints(app)
    setup_request_logging(app)
    return app
