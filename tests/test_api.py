"""
Tests for the StakeCourt HTTP API (src/api/)

Tests cover:
- Term endpoints and heartbeats
- Juror balance endpoints
- Dispute creation and drafting
- Error mapping to status codes
- Health and metrics endpoints
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from conftest import TERM_DURATION, TOKEN, activate_jurors


@pytest.fixture
def staked_court(court):
    activate_jurors(court, {"0xa": 1000 * TOKEN, "0xb": 2000 * TOKEN})
    return court


# ============================================================
# Term Endpoints
# ============================================================

class TestTermEndpoints:
    """Tests for /court/terms and /court/heartbeat."""

    def test_current_term(self, flask_client):
        response = flask_client.get("/court/terms/current")

        assert response.status_code == 200
        data = response.get_json()
        assert data["last_ensured_term_id"] == 0
        assert data["term_duration"] == TERM_DURATION

    def test_get_term(self, flask_client):
        response = flask_client.get("/court/terms/0")

        assert response.status_code == 200
        assert response.get_json()["term_id"] == 0

    def test_unknown_term_is_404(self, flask_client):
        response = flask_client.get("/court/terms/9")

        assert response.status_code == 404
        assert response.get_json()["code"] == "CLOCK_TERM_DOES_NOT_EXIST"

    def test_heartbeat(self, court, flask_client):
        court.chain.advance_time(TERM_DURATION)

        response = flask_client.post("/court/heartbeat", json={"max_transitions": 1})

        assert response.status_code == 200
        assert response.get_json() == {"term_id": 1, "needed_transitions": 0}

    def test_heartbeat_without_pending_terms(self, flask_client):
        response = flask_client.post("/court/heartbeat", json={})

        assert response.status_code == 400
        assert response.get_json()["error_type"] == "InvalidTransitionTerms"

    def test_heartbeat_rejects_bad_type(self, flask_client):
        response = flask_client.post("/court/heartbeat", json={"max_transitions": "two"})

        assert response.status_code == 400


# ============================================================
# Juror Endpoints
# ============================================================

class TestJurorEndpoints:
    """Tests for /court/jurors and /court/active-balance."""

    def test_juror_balances(self, staked_court, flask_client):
        response = flask_client.get("/court/jurors/0xa")

        assert response.status_code == 200
        data = response.get_json()
        assert data["id"] == 0
        assert data["active"] == 1000 * TOKEN
        assert data["unlocked_active"] == 0

    def test_historic_active_balance(self, staked_court, flask_client):
        before = flask_client.get("/court/jurors/0xb/active?term=0").get_json()
        after = flask_client.get("/court/jurors/0xb/active?term=1").get_json()

        assert before["active"] == 0
        assert after["active"] == 2000 * TOKEN

    def test_total_active_balance(self, staked_court, flask_client):
        staked_court.advance_terms(1)

        response = flask_client.get("/court/active-balance")

        assert response.get_json() == {"term_id": 1, "total_active_balance": 3000 * TOKEN}

    def test_malformed_term_argument(self, flask_client):
        response = flask_client.get("/court/active-balance?term=-1")

        assert response.status_code == 400


# ============================================================
# Dispute Endpoints
# ============================================================

class TestDisputeEndpoints:
    """Tests for /court/disputes."""

    def test_create_and_draft(self, staked_court, flask_client):
        created = flask_client.post("/court/disputes", json={"dispute_id": 1, "jurors_number": 3})
        assert created.status_code == 201
        assert created.get_json()["draft_term_id"] == 1

        staked_court.advance_terms(1)
        drafted = flask_client.post("/court/disputes/1/draft", json={"max_jurors": 2})

        assert drafted.status_code == 200
        data = drafted.get_json()
        assert data["draft"]["accepted_count"] == 2
        assert data["round"]["selected_jurors"] == 2
        assert flask_client.get("/court/disputes/1").get_json()["selected_jurors"] == 2

    def test_draft_too_early_is_409(self, staked_court, flask_client):
        flask_client.post("/court/disputes", json={"dispute_id": 1, "jurors_number": 3})

        response = flask_client.post("/court/disputes/1/draft")

        assert response.status_code == 409
        assert response.get_json()["retryable"] is True

    def test_duplicate_dispute_is_400(self, flask_client):
        flask_client.post("/court/disputes", json={"dispute_id": 1, "jurors_number": 3})

        response = flask_client.post("/court/disputes", json={"dispute_id": 1, "jurors_number": 3})

        assert response.status_code == 400
        assert response.get_json()["code"] == "DM_DISPUTE_ALREADY_EXISTS"

    def test_unknown_dispute_is_404(self, flask_client):
        assert flask_client.get("/court/disputes/5").status_code == 404

    @pytest.mark.parametrize(
        "payload",
        [
            {"jurors_number": 3},
            {"dispute_id": 1, "jurors_number": 0},
            {"dispute_id": True, "jurors_number": 3},
            {"dispute_id": 1, "jurors_number": 3, "draft_term_id": "next"},
        ],
    )
    def test_invalid_dispute_payload(self, flask_client, payload):
        response = flask_client.post("/court/disputes", json=payload)

        assert response.status_code == 400


# ============================================================
# Service Endpoints
# ============================================================

class TestServiceEndpoints:
    """Tests for health, metrics and the uninitialized court."""

    def test_health(self, flask_client):
        response = flask_client.get("/health")

        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["court"]["last_ensured_term_id"] == 0

    def test_metrics_json(self, flask_client):
        flask_client.get("/health")

        data = flask_client.get("/metrics/json").get_json()

        assert data["gauges"]["current_term_id"] == 0
        assert "http_requests_total" in data["counters"]

    def test_prometheus_metrics(self, flask_client):
        response = flask_client.get("/metrics")

        assert response.status_code == 200
        assert "stakecourt_current_term_id" in response.get_data(as_text=True)

    def test_request_id_header(self, flask_client):
        response = flask_client.get("/health", headers={"X-Request-ID": "req-1"})

        assert response.headers["X-Request-ID"] == "req-1"

    def test_court_not_initialized(self, flask_app, flask_client):
        from api.state import services

        services.reset()

        assert flask_client.get("/court/terms/current").status_code == 503
        assert flask_client.get("/health").get_json()["status"] == "degraded"
