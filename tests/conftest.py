"""
Pytest configuration and shared fixtures for StakeCourt tests.

This module provides shared fixtures including:
- A simulated chain and an assembled court
- Helpers to stake and activate jurors
- Flask app and client bound to the test court
- Metrics reset between tests
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from court import create_court  # noqa: E402
from court_clock import SimulatedChain  # noqa: E402
from court_config import CourtConfig  # noqa: E402
from monitoring import metrics  # noqa: E402

GOVERNOR = "0xgovernor"
TERM_DURATION = 60 * 60  # One hour
START_TIMESTAMP = 1_000_000
TOKEN = 10**18
MIN_ACTIVE_BALANCE = 100 * TOKEN


def activate_jurors(court, balances: dict[str, int]) -> None:
    """Mint, stake and activate each juror's balance."""
    for juror, amount in balances.items():
        court.token.mint(juror, amount)
        court.registry.stake(juror, amount, activate=True)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Give every test a clean metrics collector."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def court_config():
    """Court parameters used across tests."""
    return CourtConfig(
        term_duration=TERM_DURATION,
        min_active_balance=MIN_ACTIVE_BALANCE,
        penalty_pct=1000,
        max_jurors_per_draft_batch=10,
        max_draft_iterations=20,
    )


@pytest.fixture
def chain():
    return SimulatedChain(seed=b"test-chain", timestamp=START_TIMESTAMP)


@pytest.fixture
def court(court_config, chain):
    """Freshly assembled court at term 0."""
    return create_court(court_config, chain, governor=GOVERNOR)


@pytest.fixture
def dispute_manager(court):
    """Address of the module allowed to draft."""
    return court.coordinator.address


@pytest.fixture(scope="function")
def flask_app(court):
    """Create Flask test app serving the test court."""
    from api import create_app
    from api.state import services

    app = create_app(court)
    app.config['TESTING'] = True
    yield app
    services.reset()


@pytest.fixture(scope="function")
def flask_client(flask_app):
    """Create Flask test client."""
    return flask_app.test_client()
