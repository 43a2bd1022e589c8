"""
StakeCourt - Jurors Registry

Owns every juror balance and drafts jurors for dispute rounds.

Balances per juror:
- available: staked tokens not selectable for drafts
- active: tokens selectable for drafts, stored as the juror's sum tree leaf
- locked: part of the active balance reserved by drafts in flight
- pending deactivation: active tokens scheduled to become available

Balance changes become effective at the next term, so the draft of the current
term always reads settled values from the tree history.

Drafting runs bounded sortition passes: each pass samples the remaining
jurors of the batch, discards samples that land on jurors without enough
unlocked active balance and locks the draft amount for the accepted ones. When
the iteration ceiling is reached with jurors still missing, the partial result
is returned and the caller resumes later with its persisted selection cursor.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from controller import Controller, ControlledModule, GovernorRole, ModuleId, only_governor, only_module
from court_exceptions import (
    ActiveBalanceBelowMin,
    DeactivationNotDue,
    InsufficientActiveBalance,
    InsufficientLockedBalance,
    InvalidActivationAmount,
    InvalidDeactivationAmount,
    InvalidUnstakeAmount,
    InvalidZeroAmount,
    TotalActiveBalanceExceeded,
)
from court_token import BURN_ADDRESS, CourtToken
from hex_sum_tree import HexSumTree
from monitoring import metrics
from monitoring.middleware import counted, timed
from sortition import JurorsTreeSortition

logger = logging.getLogger(__name__)


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class DeactivationRequest:
    """Active balance scheduled to become available at ``available_term_id``."""
    amount: int = 0
    available_term_id: int = 0


@dataclass
class Juror:
    """Registry-side juror state. The active balance lives in the sum tree."""
    address: str
    id: int | None = None
    available_balance: int = 0
    locked_balance: int = 0
    deactivation_request: DeactivationRequest = field(default_factory=DeactivationRequest)


@dataclass
class JurorBalance:
    active: int
    available: int
    locked: int
    pending_deactivation: int

    def to_dict(self) -> dict[str, int]:
        return {
            "active": self.active,
            "available": self.available,
            "locked": self.locked,
            "pending_deactivation": self.pending_deactivation,
        }


@dataclass
class DraftRequest:
    """
    Parameters of a single draft invocation.

    ``selected_jurors`` is the round's resumption cursor: the caller persists it
    between invocations.
    """
    dispute_id: int
    term_id: int
    term_randomness: bytes
    round_requested_jurors: int
    batch_requested_jurors: int
    selected_jurors: int
    draft_lock_amount: int
    sortition_iteration: int = 0


@dataclass
class DraftResult:
    """Jurors accepted by a draft invocation, merged by juror."""
    jurors: list[str] = field(default_factory=list)
    weights: list[int] = field(default_factory=list)
    accepted_count: int = 0
    iterations: int = 0
    next_iteration: int = 0
    rejected_samples: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "jurors": self.jurors,
            "weights": self.weights,
            "accepted_count": self.accepted_count,
            "iterations": self.iterations,
            "next_iteration": self.next_iteration,
            "rejected_samples": self.rejected_samples,
        }


# =============================================================================
# Registry
# =============================================================================


class JurorsRegistry(ControlledModule):
    """Juror balances, activation lifecycle and drafting."""

    def __init__(
        self,
        controller: Controller,
        token: CourtToken,
        total_active_balance_limit: int,
        address: str = "0xjurors-registry",
    ):
        super().__init__(controller, address)
        self.token = token
        self.total_active_balance_limit = total_active_balance_limit
        self.tree = HexSumTree()
        self.sortition = JurorsTreeSortition(self.tree)
        self._jurors: dict[str, Juror] = {}
        self._jurors_by_id: dict[int, str] = {}

    # ==================== STAKING ====================

    def stake(self, juror: str, amount: int, activate: bool = False) -> None:
        """Stake ``amount`` of the juror's own tokens."""
        self._stake(juror, juror, amount, activate)

    def stake_for(self, juror: str, amount: int, *, sender: str, activate: bool = False) -> None:
        """Stake ``amount`` of the sender's tokens on behalf of ``juror``."""
        self._stake(sender, juror, amount, activate)

    def _stake(self, source: str, juror: str, amount: int, activate: bool) -> None:
        if amount == 0:
            raise InvalidZeroAmount(action="stake", details={"juror": juror})

        term_id = self._ensure_current_term()
        if activate:
            self._check_activation(juror, term_id, amount)

        self.token.transfer(source, self.address, amount)
        state = self._juror(juror)
        state.available_balance += amount
        self._emit_event("Staked", {
            "juror": juror,
            "amount": amount,
            "total": self.total_staked_for(juror),
        })
        self._emit_available_change(juror, amount, True)

        if activate:
            self._activate_tokens(juror, term_id, amount)

    def unstake(self, juror: str, amount: int) -> None:
        """Withdraw ``amount`` of available balance back to the juror."""
        term_id = self._ensure_current_term()
        self._process_deactivation_request(juror, term_id)

        if amount == 0:
            raise InvalidZeroAmount(action="unstake", details={"juror": juror})
        state = self._juror(juror)
        if amount > state.available_balance:
            raise InvalidUnstakeAmount(
                action="unstake",
                details={"juror": juror, "amount": amount, "available": state.available_balance},
            )

        state.available_balance -= amount
        self.token.transfer(self.address, juror, amount)
        self._emit_event("Unstaked", {
            "juror": juror,
            "amount": amount,
            "total": self.total_staked_for(juror),
        })
        self._emit_available_change(juror, amount, False)

    # ==================== ACTIVATION ====================

    @counted("activations_total")
    def activate(self, juror: str, amount: int = 0) -> None:
        """
        Move available balance into the active set from the next term.

        Args:
            juror: Juror address
            amount: Amount to activate, zero for the whole available balance

        Raises:
            InvalidZeroAmount: nothing available to activate
            InvalidActivationAmount: more than the available balance requested
            ActiveBalanceBelowMin: resulting active balance below the minimum
            TotalActiveBalanceExceeded: court-wide active balance limit reached
        """
        term_id = self._ensure_current_term()
        self._process_deactivation_request(juror, term_id)

        available = self._juror(juror).available_balance
        amount_to_activate = available if amount == 0 else amount
        if amount_to_activate == 0:
            raise InvalidZeroAmount(action="activate", details={"juror": juror})
        if amount_to_activate > available:
            raise InvalidActivationAmount(
                action="activate",
                details={"juror": juror, "amount": amount_to_activate, "available": available},
            )

        self._check_activation(juror, term_id, amount_to_activate)
        self._activate_tokens(juror, term_id, amount_to_activate)

    def _check_activation(self, juror: str, term_id: int, amount: int) -> None:
        min_active_balance = self._config_at(term_id).min_active_balance
        future_active = self._next_term_active_balance(juror) + amount
        if future_active < min_active_balance:
            raise ActiveBalanceBelowMin(
                action="activate",
                details={"juror": juror, "active": future_active, "min": min_active_balance},
            )
        if self.tree.total() + amount > self.total_active_balance_limit:
            raise TotalActiveBalanceExceeded(
                action="activate",
                details={"amount": amount, "limit": self.total_active_balance_limit},
            )

    def _activate_tokens(self, juror: str, term_id: int, amount: int) -> None:
        state = self._juror(juror)
        next_term_id = term_id + 1

        if state.id is None:
            state.id = self.tree.insert(next_term_id, amount)
            self._jurors_by_id[state.id] = juror
        else:
            self.tree.update(state.id, next_term_id, amount, True)

        state.available_balance -= amount
        self._emit_event("JurorActivated", {
            "juror": juror,
            "from_term_id": next_term_id,
            "amount": amount,
        })
        self._emit_available_change(juror, amount, False)
        metrics.set_gauge("total_active_balance", self.tree.total())
        logger.info("Juror %s activated %d from term %d", juror, amount, next_term_id)

    # ==================== DEACTIVATION ====================

    @counted("deactivation_requests_total")
    def deactivate(self, juror: str, amount: int = 0) -> None:
        """
        Schedule active balance to leave the active set at the next term.

        Args:
            juror: Juror address
            amount: Amount to deactivate, zero for the whole unlocked balance

        Raises:
            InvalidZeroAmount: nothing unlocked to deactivate
            InvalidDeactivationAmount: above the unlocked balance, or leaving a
                non-zero active balance below the minimum
        """
        term_id = self._ensure_current_term()
        self._process_deactivation_request(juror, term_id)

        state = self._juror(juror)
        active = self._next_term_active_balance(juror)
        unlocked = max(active - state.locked_balance, 0)
        amount_to_deactivate = unlocked if amount == 0 else amount
        if amount_to_deactivate == 0:
            raise InvalidZeroAmount(action="deactivate", details={"juror": juror})
        if amount_to_deactivate > unlocked:
            raise InvalidDeactivationAmount(
                action="deactivate",
                details={"juror": juror, "amount": amount_to_deactivate, "unlocked": unlocked},
            )

        future_active = active - amount_to_deactivate
        min_active_balance = self._config_at(term_id).min_active_balance
        if 0 < future_active < min_active_balance:
            raise InvalidDeactivationAmount(
                action="deactivate",
                details={"juror": juror, "remaining": future_active, "min": min_active_balance},
            )

        next_term_id = term_id + 1
        self.tree.update(state.id, next_term_id, amount_to_deactivate, False)
        request = state.deactivation_request
        request.amount += amount_to_deactivate
        request.available_term_id = next_term_id

        self._emit_event("JurorDeactivationRequested", {
            "juror": juror,
            "available_term_id": next_term_id,
            "amount": amount_to_deactivate,
        })
        metrics.set_gauge("total_active_balance", self.tree.total())

    def process_deactivation_request(self, juror: str) -> None:
        """
        Make a due deactivation request available.

        Raises:
            DeactivationNotDue: no request, or its term has not started yet
        """
        term_id = self._ensure_current_term()
        request = self._juror(juror).deactivation_request
        if request.amount == 0 or request.available_term_id > term_id:
            raise DeactivationNotDue(
                action="process_deactivation_request",
                details={
                    "juror": juror,
                    "amount": request.amount,
                    "available_term_id": request.available_term_id,
                    "term_id": term_id,
                },
            )
        self._process_deactivation_request(juror, term_id)

    def _process_deactivation_request(self, juror: str, term_id: int) -> None:
        state = self._jurors.get(juror)
        if state is None:
            return
        request = state.deactivation_request
        if request.amount == 0 or request.available_term_id > term_id:
            return

        amount = request.amount
        available_term_id = request.available_term_id
        state.available_balance += amount
        state.deactivation_request = DeactivationRequest()

        self._emit_event("JurorDeactivationProcessed", {
            "juror": juror,
            "amount": amount,
            "available_term_id": available_term_id,
            "processed_term_id": term_id,
        })
        self._emit_available_change(juror, amount, True)

    def _reduce_deactivation_request(self, juror: str, amount: int, term_id: int) -> None:
        request = self._jurors[juror].deactivation_request
        request.amount -= amount
        self._emit_event("JurorDeactivationUpdated", {
            "juror": juror,
            "amount": request.amount,
            "available_term_id": request.available_term_id,
            "updated_term_id": term_id,
        })

    # ==================== DRAFTING ====================

    @only_module(ModuleId.DISPUTE_MANAGER)
    @timed("draft_duration_ms")
    def draft(self, request: DraftRequest, *, sender: str) -> DraftResult:
        """
        Draft up to ``batch_requested_jurors`` jurors for a dispute round.

        Runs sortition passes until the batch is filled or the per-invocation
        iteration ceiling is reached. A shortfall is returned as a partial
        result, never as an error. Nothing is locked if a pass fails.

        Raises:
            OutOfBounds: there is no active balance at the draft term
        """
        result = DraftResult(next_iteration=request.sortition_iteration)
        if request.batch_requested_jurors == 0:
            return result

        max_iterations = self._config_at(request.term_id).max_draft_iterations
        lock_amount = request.draft_lock_amount
        remaining = request.batch_requested_jurors
        iteration = request.sortition_iteration
        next_term_id = self._last_ensured_term_id() + 1
        pending_locks: dict[str, int] = defaultdict(int)
        drafted_keys: list[int] = []

        while remaining > 0 and iteration < max_iterations:
            keys, active_balances = self.sortition.batched_random_search(
                request.term_randomness,
                request.dispute_id,
                request.term_id,
                request.selected_jurors + len(drafted_keys),
                remaining,
                request.round_requested_jurors,
                iteration,
            )

            accepted = 0
            for key, active_balance in zip(keys, active_balances):
                if accepted == remaining:
                    break
                juror = self._jurors_by_id[key]
                state = self._jurors[juror]
                new_locked = state.locked_balance + pending_locks[juror] + lock_amount
                if active_balance >= new_locked and self._lock_capacity(state, next_term_id) >= new_locked:
                    pending_locks[juror] += lock_amount
                    drafted_keys.append(key)
                    accepted += 1
                else:
                    result.rejected_samples += 1
                    logger.debug("Rejected juror %s for dispute %s: not enough unlocked balance",
                                 juror, request.dispute_id)

            remaining -= accepted
            iteration += 1
            result.iterations += 1

        self._commit_draft_locks(pending_locks)

        drafted_keys.sort()
        for key in drafted_keys:
            juror = self._jurors_by_id[key]
            if result.jurors and result.jurors[-1] == juror:
                result.weights[-1] += 1
            else:
                result.jurors.append(juror)
                result.weights.append(1)
        result.accepted_count = len(drafted_keys)
        result.next_iteration = iteration

        for juror, weight in zip(result.jurors, result.weights):
            self._emit_event("JurorDraftLocked", {
                "dispute_id": request.dispute_id,
                "juror": juror,
                "weight": weight,
                "locked_amount": weight * lock_amount,
            })

        metrics.increment("drafts_total")
        metrics.increment("jurors_drafted_total", result.accepted_count)
        metrics.increment("draft_iterations_total", result.iterations)
        metrics.increment("draft_samples_rejected_total", result.rejected_samples)
        logger.info(
            "Drafted %d/%d jurors for dispute %s at term %s in %d iterations",
            result.accepted_count, request.batch_requested_jurors,
            request.dispute_id, request.term_id, result.iterations,
        )
        return result

    def draft_with(
        self,
        term_randomness: bytes,
        dispute_id: int,
        selected_jurors: int,
        batch_requested_jurors: int,
        round_requested_jurors: int,
        draft_lock_amount: int,
        *,
        sender: str,
    ) -> DraftResult:
        """Draft at the last ensured term."""
        request = DraftRequest(
            dispute_id=dispute_id,
            term_id=self._last_ensured_term_id(),
            term_randomness=term_randomness,
            round_requested_jurors=round_requested_jurors,
            batch_requested_jurors=batch_requested_jurors,
            selected_jurors=selected_jurors,
            draft_lock_amount=draft_lock_amount,
        )
        return self.draft(request, sender=sender)

    def _lock_capacity(self, state: Juror, next_term_id: int) -> int:
        """Next-term active balance plus what a pending deactivation can give back."""
        capacity = self.tree.get_item(state.id)
        request = state.deactivation_request
        if request.available_term_id >= next_term_id:
            capacity += request.amount
        return capacity

    def _commit_draft_locks(self, pending_locks: dict[str, int]) -> None:
        next_term_id = self._last_ensured_term_id() + 1
        for juror, amount in pending_locks.items():
            state = self._jurors[juror]
            state.locked_balance += amount

            # Keep the lock covered by next term's active balance
            shortfall = state.locked_balance - self.tree.get_item(state.id)
            request = state.deactivation_request
            if shortfall > 0 and request.amount > 0 and request.available_term_id >= next_term_id:
                reduction = min(shortfall, request.amount)
                self.tree.update(state.id, next_term_id, reduction, True)
                self._reduce_deactivation_request(juror, reduction, next_term_id - 1)

    # ==================== DISPUTE SETTLEMENT ====================

    @only_module(ModuleId.DISPUTE_MANAGER)
    def slash_or_unlock(
        self,
        term_id: int,
        jurors: list[str],
        locked_amounts: list[int],
        rewarded_jurors: list[bool],
        *,
        sender: str,
    ) -> int:
        """
        Release draft locks, slashing the jurors that were not rewarded.

        Slashed amounts leave the active balance at the next term. Every
        juror is checked before any lock is released.

        Returns:
            Total amount collected from slashed jurors

        Raises:
            InsufficientLockedBalance: a juror has less locked than released
            InsufficientActiveBalance: a juror's next-term active balance cannot
                cover their slash
        """
        if not len(jurors) == len(locked_amounts) == len(rewarded_jurors):
            raise ValueError("jurors, locked_amounts and rewarded_jurors must have the same length")

        unlocks: dict[str, int] = defaultdict(int)
        slashes: dict[str, int] = defaultdict(int)
        for juror, amount, rewarded in zip(jurors, locked_amounts, rewarded_jurors):
            unlocks[juror] += amount
            if not rewarded:
                slashes[juror] += amount
        for juror, amount in unlocks.items():
            locked = self._jurors[juror].locked_balance if juror in self._jurors else 0
            if locked < amount:
                raise InsufficientLockedBalance(
                    action="slash_or_unlock",
                    details={"juror": juror, "locked": locked, "amount": amount},
                )
        for juror, amount in slashes.items():
            active = self._next_term_active_balance(juror)
            if active < amount:
                raise InsufficientActiveBalance(
                    action="slash_or_unlock",
                    details={"juror": juror, "active": active, "amount": amount},
                )

        next_term_id = term_id + 1
        collected = 0
        for juror, amount, rewarded in zip(jurors, locked_amounts, rewarded_jurors):
            state = self._juror(juror)
            state.locked_balance -= amount
            if rewarded or amount == 0:
                continue
            collected += amount
            self.tree.update(state.id, next_term_id, amount, False)
            self._emit_event("JurorSlashed", {
                "juror": juror,
                "amount": amount,
                "effective_term_id": next_term_id,
            })

        if collected:
            metrics.set_gauge("total_active_balance", self.tree.total())
        return collected

    @only_module(ModuleId.DISPUTE_MANAGER)
    def collect_tokens(self, juror: str, amount: int, term_id: int, *, sender: str) -> bool:
        """
        Take ``amount`` from the juror's unlocked next-term active balance,
        falling back to a pending deactivation request.

        Returns:
            False when the juror cannot cover the amount, True otherwise
        """
        if amount == 0:
            return True

        state = self._jurors.get(juror)
        if state is None or state.id is None:
            return False

        next_term_id = term_id + 1
        unlocked_active = max(self.tree.get_item(state.id) - state.locked_balance, 0)
        request = state.deactivation_request
        pending = request.amount if request.available_term_id > term_id else 0
        if amount > unlocked_active + pending:
            return False

        from_active = min(amount, unlocked_active)
        from_deactivation = amount - from_active
        if from_active:
            self.tree.update(state.id, next_term_id, from_active, False)
        if from_deactivation:
            self._reduce_deactivation_request(juror, from_deactivation, term_id)

        self._emit_event("JurorTokensCollected", {
            "juror": juror,
            "amount": amount,
            "effective_term_id": next_term_id,
        })
        return True

    @only_module(ModuleId.DISPUTE_MANAGER)
    def assign_tokens(self, juror: str, amount: int, *, sender: str) -> None:
        """Credit tokens held by the registry to a juror's available balance."""
        if amount == 0:
            return
        self._juror(juror).available_balance += amount
        self._emit_event("JurorTokensAssigned", {"juror": juror, "amount": amount})
        self._emit_available_change(juror, amount, True)

    @only_module(ModuleId.DISPUTE_MANAGER)
    def burn_tokens(self, amount: int, *, sender: str) -> None:
        if amount == 0:
            return
        self._juror(BURN_ADDRESS).available_balance += amount
        self._emit_event("JurorTokensBurned", {"amount": amount})

    @only_governor(GovernorRole.CONFIG)
    def set_total_active_balance_limit(self, limit: int, *, sender: str) -> None:
        if limit <= 0:
            raise InvalidZeroAmount(action="set_total_active_balance_limit")
        previous = self.total_active_balance_limit
        self.total_active_balance_limit = limit
        self._emit_event("TotalActiveBalanceLimitChanged", {"previous": previous, "current": limit})

    # ==================== VIEWS ====================

    def balance_of(self, juror: str) -> JurorBalance:
        state = self._jurors.get(juror) or Juror(address=juror)
        return JurorBalance(
            active=self._next_term_active_balance(juror),
            available=state.available_balance,
            locked=state.locked_balance,
            pending_deactivation=state.deactivation_request.amount,
        )

    def balance_of_at(self, juror: str, term_id: int) -> JurorBalance:
        balance = self.balance_of(juror)
        balance.active = self.active_balance_of_at(juror, term_id)
        return balance

    def active_balance_of_at(self, juror: str, term_id: int) -> int:
        state = self._jurors.get(juror)
        if state is None or state.id is None:
            return 0
        return self.tree.get_item_at(state.id, term_id)

    def unlocked_active_balance_of(self, juror: str) -> int:
        """Active balance at the last ensured term not reserved by drafts."""
        state = self._jurors.get(juror)
        if state is None:
            return 0
        active = self.active_balance_of_at(juror, self._last_ensured_term_id())
        return max(active - state.locked_balance, 0)

    def total_active_balance_at(self, term_id: int) -> int:
        return self.tree.total_at(term_id)

    def total_staked(self) -> int:
        return self.token.balance_of(self.address)

    def total_staked_for(self, juror: str) -> int:
        state = self._jurors.get(juror)
        if state is None:
            return 0
        return (
            self._next_term_active_balance(juror)
            + state.available_balance
            + state.deactivation_request.amount
        )

    def get_juror_id(self, juror: str) -> int | None:
        state = self._jurors.get(juror)
        return state.id if state else None

    def get_juror_by_id(self, juror_id: int) -> str | None:
        return self._jurors_by_id.get(juror_id)

    def get_deactivation_request(self, juror: str) -> DeactivationRequest:
        state = self._jurors.get(juror)
        if state is None:
            return DeactivationRequest()
        request = state.deactivation_request
        return DeactivationRequest(request.amount, request.available_term_id)

    def get_statistics(self) -> dict[str, Any]:
        term_id = self._last_ensured_term_id()
        return {
            "jurors": len(self._jurors_by_id),
            "term_id": term_id,
            "total_active_balance": self.tree.total_at(term_id),
            "next_term_total_active_balance": self.tree.total(),
            "total_active_balance_limit": self.total_active_balance_limit,
            "total_staked": self.total_staked(),
            "tree_height": self.tree.height(),
        }

    # ==================== HELPERS ====================

    def _juror(self, juror: str) -> Juror:
        state = self._jurors.get(juror)
        if state is None:
            state = Juror(address=juror)
            self._jurors[juror] = state
        return state

    def _next_term_active_balance(self, juror: str) -> int:
        state = self._jurors.get(juror)
        if state is None or state.id is None:
            return 0
        return self.tree.get_item(state.id)

    def _emit_available_change(self, juror: str, amount: int, positive: bool) -> None:
        self._emit_event("JurorAvailableBalanceChanged", {
            "juror": juror,
            "amount": amount,
            "positive": positive,
        })
