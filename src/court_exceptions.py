"""
StakeCourt - Court Exception Hierarchy

Provides a consistent set of exceptions for the sum tree, sortition, registry,
clock and controller components. All exceptions carry structured error context
so API handlers and logs can report them uniformly.

Error classes:
- Structural: caller invariant violations, never retryable with the same arguments
- Availability: retryable once the court advances to a later term
- Authorization: the sender lacks the required role or module identity
- Balance / Clock / Config / Dispute: validation failures of the owning component
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """Severity levels for court errors."""
    LOW = "low"           # Expected rejection, e.g. bad user input
    MEDIUM = "medium"     # Should be monitored
    HIGH = "high"         # Invariant violation or unauthorized access
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Structured context for error tracking and debugging."""
    component: str
    action: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat() + "Z")
    details: dict[str, Any] = field(default_factory=dict)
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "component": self.component,
            "action": self.action,
            "timestamp": self.timestamp,
            "details": self.details,
            "severity": self.severity.value
        }


class CourtError(Exception):
    """
    Base exception for all court errors.

    Subclasses set a stable ``code`` used by API clients and tests, and
    ``retryable`` to tell callers whether the same call may succeed later.
    """

    code = "COURT_ERROR"
    retryable = False
    default_component = "court"
    default_severity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str | None = None,
        component: str | None = None,
        action: str = "unknown",
        severity: ErrorSeverity | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None
    ):
        message = message or self.code
        super().__init__(message)
        self.message = message
        self.context = ErrorContext(
            component=component or self.default_component,
            action=action,
            severity=severity or self.default_severity,
            details=details or {}
        )
        self.cause = cause

        if cause:
            self.__cause__ = cause

    @property
    def details(self) -> dict[str, Any]:
        return self.context.details

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            **self.context.to_dict()
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }
        return result

    def __str__(self) -> str:
        base = f"[{self.context.component}:{self.context.action}] {self.message}"
        if self.cause:
            base += f" (caused by: {self.cause})"
        return base


# =============================================================================
# Structural Errors
# =============================================================================

class StructuralError(CourtError):
    """
    Raised when a caller breaks a data structure invariant.

    Examples:
    - Inserting a non-adjacent leaf key
    - Arithmetic overflow while propagating a sum
    - Searching for a value beyond the tree total
    """
    code = "STRUCTURAL_ERROR"
    default_component = "sum_tree"
    default_severity = ErrorSeverity.HIGH


class CheckpointPastValue(StructuralError):
    code = "CHECKPOINT_CANNOT_ADD_PAST_VALUE"
    default_component = "checkpointing"


class CheckpointValueTooBig(StructuralError):
    code = "CHECKPOINT_VALUE_TOO_BIG"
    default_component = "checkpointing"


class KeyNotAdjacent(StructuralError):
    code = "SUM_TREE_KEY_NOT_ADJACENT"


class KeyDoesNotExist(StructuralError):
    code = "SUM_TREE_KEY_DOES_NOT_EXIST"


class SumTreeOverflow(StructuralError):
    code = "SUM_TREE_UPDATE_OVERFLOW"


class SumTreeUnderflow(StructuralError):
    code = "SUM_TREE_UPDATE_UNDERFLOW"


class InvalidSearchValues(StructuralError):
    code = "SUM_TREE_SEARCH_VALUES_NOT_SORTED"


class OutOfBounds(StructuralError):
    code = "SUM_TREE_SEARCH_OUT_OF_BOUNDS"


class InvalidInterval(StructuralError):
    code = "SORTITION_INVALID_INTERVAL"
    default_component = "sortition"


# =============================================================================
# Availability Errors
# =============================================================================

class AvailabilityError(CourtError):
    """
    Raised when an operation cannot run yet but may succeed in a later term.

    Callers must not treat these as permanent conditions.
    """
    code = "AVAILABILITY_ERROR"
    retryable = True
    default_component = "court_clock"
    default_severity = ErrorSeverity.LOW


class RandomnessUnavailable(AvailabilityError):
    code = "TERM_RANDOMNESS_UNAVAILABLE"


class TermRandomnessNotYet(RandomnessUnavailable):
    code = "TERM_RANDOMNESS_NOT_YET"


class TermRandomnessUnavailable(RandomnessUnavailable):
    code = "TERM_RANDOMNESS_UNAVAILABLE"


class TooManyTransitions(AvailabilityError):
    code = "CLOCK_TOO_MANY_TRANSITIONS"


class DraftTermNotReached(AvailabilityError):
    code = "DRAFT_TERM_NOT_REACHED"
    default_component = "draft_coordinator"


# =============================================================================
# Authorization Errors
# =============================================================================

class AuthorizationError(CourtError):
    """Raised when the sender does not hold the required role or module identity."""
    code = "AUTHORIZATION_ERROR"
    default_component = "controller"
    default_severity = ErrorSeverity.HIGH


class Unauthorized(AuthorizationError):
    code = "SENDER_NOT_ALLOWED"

    def __init__(self, sender: str | None, required: str, action: str = "unknown"):
        super().__init__(
            message=f"Sender {sender!r} is not {required}",
            action=action,
            details={"sender": sender, "required": required},
        )
        self.sender = sender
        self.required = required


# =============================================================================
# Balance Errors
# =============================================================================

class BalanceError(CourtError):
    """Raised when a juror balance operation fails validation."""
    code = "BALANCE_ERROR"
    default_component = "jurors_registry"
    default_severity = ErrorSeverity.LOW


class InvalidZeroAmount(BalanceError):
    code = "JR_INVALID_ZERO_AMOUNT"


class InvalidActivationAmount(BalanceError):
    code = "JR_INVALID_ACTIVATION_AMOUNT"


class InvalidDeactivationAmount(BalanceError):
    code = "JR_INVALID_DEACTIVATION_AMOUNT"


class InvalidUnstakeAmount(BalanceError):
    code = "JR_INVALID_UNSTAKE_AMOUNT"


class ActiveBalanceBelowMin(BalanceError):
    code = "JR_ACTIVE_BALANCE_BELOW_MIN"


class TotalActiveBalanceExceeded(BalanceError):
    code = "JR_TOTAL_ACTIVE_BALANCE_EXCEEDED"


class DeactivationNotDue(BalanceError):
    code = "JR_DEACTIVATION_NOT_DUE"


class InsufficientLockedBalance(BalanceError):
    code = "JR_INSUFFICIENT_LOCKED_BALANCE"
    default_severity = ErrorSeverity.HIGH


class InsufficientActiveBalance(BalanceError):
    code = "JR_INSUFFICIENT_ACTIVE_BALANCE"
    default_severity = ErrorSeverity.HIGH


class InsufficientTokenBalance(BalanceError):
    code = "TOKEN_INSUFFICIENT_BALANCE"
    default_component = "court_token"


# =============================================================================
# Clock Errors
# =============================================================================

class ClockError(CourtError):
    """Raised when the court clock is misconfigured or misused."""
    code = "CLOCK_ERROR"
    default_component = "court_clock"


class BadFirstTermStartTime(ClockError):
    code = "CLOCK_BAD_FIRST_TERM_START_TIME"


class BadTermDuration(ClockError):
    code = "CLOCK_BAD_TERM_DURATION"


class InvalidTransitionTerms(ClockError):
    code = "CLOCK_INVALID_TRANSITION_TERMS"


class TermDoesNotExist(ClockError):
    code = "CLOCK_TERM_DOES_NOT_EXIST"


# =============================================================================
# Config / Governance Errors
# =============================================================================

class ConfigError(CourtError):
    """Raised on invalid court configuration or governance wiring."""
    code = "CONFIG_ERROR"
    default_component = "controller"


class InvalidConfig(ConfigError):
    code = "CONF_INVALID_CONFIG"
    default_component = "court_config"


class TooOldTerm(ConfigError):
    code = "CONF_TOO_OLD_TERM"


class InvalidGovernor(ConfigError):
    code = "CTR_INVALID_GOVERNOR_ADDRESS"


class ModuleNotSet(ConfigError):
    code = "CTR_MODULE_NOT_SET"


# =============================================================================
# Dispute Errors
# =============================================================================

class DisputeError(CourtError):
    """Raised by the dispute-side draft coordinator."""
    code = "DISPUTE_ERROR"
    default_component = "draft_coordinator"
    default_severity = ErrorSeverity.LOW


class DisputeAlreadyExists(DisputeError):
    code = "DM_DISPUTE_ALREADY_EXISTS"


class DisputeDoesNotExist(DisputeError):
    code = "DM_DISPUTE_DOES_NOT_EXIST"


class RoundAlreadyDrafted(DisputeError):
    code = "DM_ROUND_ALREADY_DRAFTED"


class RoundAlreadySettled(DisputeError):
    code = "DM_ROUND_ALREADY_SETTLED"
