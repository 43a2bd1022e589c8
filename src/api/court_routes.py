"""
StakeCourt - Court API Blueprint

REST API endpoints for the juror sortition court.
Provides access to:
- Term information and clock heartbeats
- Juror balances and historic active balances
- Court-wide active balance per term
- Dispute round creation and drafting
"""

from flask import Blueprint, jsonify, request

from court import Court
from jurors_registry import JurorBalance

from .utils import get_term_arg, require_court, validate_json_schema

court_bp = Blueprint("court", __name__)


# =============================================================================
# Terms
# =============================================================================


@court_bp.route("/court/terms/current", methods=["GET"])
@require_court
def get_current_term(court: Court):
    """Return the clock state and the last ensured term."""
    return jsonify(court.clock.get_info())


@court_bp.route("/court/terms/<int:term_id>", methods=["GET"])
@require_court
def get_term(court: Court, term_id: int):
    """Return a term, including its randomness once computed."""
    term = court.clock.get_term(term_id)
    return jsonify({"term_id": term_id, **term.to_dict()})


@court_bp.route("/court/heartbeat", methods=["POST"])
@require_court
def heartbeat(court: Court):
    """
    Transition pending terms.

    Request body:
        {
            "max_transitions": 1  // Optional, defaults to 1
        }
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(data, {}, {"max_transitions": int})
    if not valid:
        return jsonify({"error": error}), 400

    term_id = court.clock.heartbeat(data.get("max_transitions", 1))
    return jsonify({"term_id": term_id, "needed_transitions": court.clock.get_needed_term_transitions()})


# =============================================================================
# Jurors
# =============================================================================


@court_bp.route("/court/jurors/<address>", methods=["GET"])
@require_court
def get_juror(court: Court, address: str):
    """Return a juror's balances."""
    registry = court.registry
    balance: JurorBalance = registry.balance_of(address)
    return jsonify({
        "juror": address,
        "id": registry.get_juror_id(address),
        **balance.to_dict(),
        "unlocked_active": registry.unlocked_active_balance_of(address),
    })


@court_bp.route("/court/jurors/<address>/active", methods=["GET"])
@require_court
def get_juror_active_balance(court: Court, address: str):
    """
    Return a juror's active balance at a term.

    Query params:
        term: Term id (default: last ensured term)
    """
    term_id = get_term_arg(court.clock.get_last_ensured_term_id())
    if term_id is None:
        return jsonify({"error": "term must be a non-negative integer"}), 400
    return jsonify({
        "juror": address,
        "term_id": term_id,
        "active": court.registry.active_balance_of_at(address, term_id),
    })


@court_bp.route("/court/active-balance", methods=["GET"])
@require_court
def get_total_active_balance(court: Court):
    """
    Return the court-wide active balance at a term.

    Query params:
        term: Term id (default: last ensured term)
    """
    term_id = get_term_arg(court.clock.get_last_ensured_term_id())
    if term_id is None:
        return jsonify({"error": "term must be a non-negative integer"}), 400
    return jsonify({"term_id": term_id, "total_active_balance": court.registry.total_active_balance_at(term_id)})


# =============================================================================
# Disputes
# =============================================================================


@court_bp.route("/court/disputes", methods=["POST"])
@require_court
def create_dispute(court: Court):
    """
    Open a dispute round.

    Request body:
        {
            "dispute_id": 0,
            "jurors_number": 3,
            "draft_term_id": 2  // Optional, defaults to the next term
        }
    """
    data = request.get_json(silent=True)
    valid, error = validate_json_schema(
        data, {"dispute_id": int, "jurors_number": int}, {"draft_term_id": int}
    )
    if not valid:
        return jsonify({"error": error}), 400
    if data["jurors_number"] <= 0:
        return jsonify({"error": "jurors_number must be positive"}), 400

    round_draft = court.coordinator.create_round(
        data["dispute_id"], data["jurors_number"], data.get("draft_term_id")
    )
    return jsonify(round_draft.to_dict()), 201


@court_bp.route("/court/disputes/<int:dispute_id>", methods=["GET"])
@require_court
def get_dispute(court: Court, dispute_id: int):
    """Return the draft state of a dispute round."""
    return jsonify(court.coordinator.get_round(dispute_id).to_dict())


@court_bp.route("/court/disputes/<int:dispute_id>/draft", methods=["POST"])
@require_court
def draft_dispute(court: Court, dispute_id: int):
    """
    Draft the next batch of jurors for a dispute.

    Request body:
        {
            "max_jurors": 5  // Optional batch cap
        }
    """
    data = request.get_json(silent=True) or {}
    valid, error = validate_json_schema(data, {}, {"max_jurors": int})
    if not valid:
        return jsonify({"error": error}), 400

    result = court.coordinator.draft(dispute_id, data.get("max_jurors"))
    return jsonify({
        "dispute_id": dispute_id,
        "draft": result.to_dict(),
        "round": court.coordinator.get_round(dispute_id).to_dict(),
    })
