"""
Shared state for the StakeCourt API.

Holds the court instance shared by all blueprints. The court is created by
``api.create_app`` (or injected by tests) and read through ``services``.
"""

import logging

from court import Court, create_court
from court_config import CourtConfig

logger = logging.getLogger(__name__)


class CourtServices:
    """Registry of the court served by the API."""

    court: Court | None = None

    def reset(self) -> None:
        self.court = None


services = CourtServices()


def init_court(config: CourtConfig | None = None) -> Court:
    """Create a court from ``config`` (or the environment) and share it."""
    services.court = create_court(config or CourtConfig.from_env())
    logger.info("Court initialized, first term starts at %s", services.court.config.first_term_start_time)
    return services.court
