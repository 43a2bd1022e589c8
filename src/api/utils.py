"""
Shared utilities for the StakeCourt API.

Error mapping, request validation helpers and decorators used across the
API blueprints.
"""

import logging
from functools import wraps
from typing import Any

from flask import jsonify, request

from api.state import services
from court_exceptions import (
    AuthorizationError,
    AvailabilityError,
    CourtError,
    DisputeDoesNotExist,
    TermDoesNotExist,
)

logger = logging.getLogger(__name__)

# Most specific classes first
ERROR_STATUS_CODES: list[tuple[type[CourtError], int]] = [
    (AuthorizationError, 403),
    (DisputeDoesNotExist, 404),
    (TermDoesNotExist, 404),
    (AvailabilityError, 409),
    (CourtError, 400),
]


# ============================================================
# Error Responses
# ============================================================

def court_error_response(error: CourtError):
    """Convert a court error into a JSON response with a matching status code."""
    status = next(code for cls, code in ERROR_STATUS_CODES if isinstance(error, cls))
    if status >= 403:
        logger.info("Court request rejected: %s", error)
    return jsonify({"error": error.message, **error.to_dict()}), status


def require_court(f):
    """Return 503 when no court has been initialized, map court errors otherwise."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if services.court is None:
            return jsonify({"error": "Court not initialized"}), 503
        try:
            return f(services.court, *args, **kwargs)
        except CourtError as e:
            return court_error_response(e)

    return decorated_function


# ============================================================
# Validation Utilities
# ============================================================

def validate_json_schema(
    data: Any,
    required_fields: dict[str, type],
    optional_fields: dict[str, type] | None = None,
) -> tuple:
    """
    Validate a JSON payload against a simple schema.

    Args:
        data: The JSON data to validate
        required_fields: Dict mapping field names to expected types
        optional_fields: Dict mapping optional field names to expected types

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not _is_type(data[field_name], expected_type):
            return False, f"Field '{field_name}' must be of type {expected_type.__name__}"

    for field_name, expected_type in (optional_fields or {}).items():
        if data.get(field_name) is not None and not _is_type(data[field_name], expected_type):
            return False, f"Field '{field_name}' must be of type {expected_type.__name__}"

    return True, None


def _is_type(value: Any, expected_type: type) -> bool:
    # bool is an int subclass, never accept it for amounts or ids
    if expected_type is int and isinstance(value, bool):
        return False
    return isinstance(value, expected_type)


def get_term_arg(default: int) -> int | None:
    """Read the ``term`` query parameter, returning None when malformed."""
    term = request.args.get("term", default, type=int)
    if term is None or term < 0:
        return None
    return term
