"""
StakeCourt - Draft Coordinator

Dispute-side driver of the jurors registry draft. It is registered in the
controller as the dispute manager module and is the only caller allowed to
draft, settle and move juror balances.

For each dispute it keeps the round's draft state: how many jurors were
requested, how many have been selected so far (the resumption cursor) and the
weight drafted for every juror. Each call drafts at most one batch; rounds that
cannot be filled in one call are resumed by calling draft again, typically in a
later term with fresh randomness.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from controller import Controller, ControlledModule, ModuleId
from court_exceptions import (
    DisputeAlreadyExists,
    DisputeDoesNotExist,
    DraftTermNotReached,
    RoundAlreadyDrafted,
    RoundAlreadySettled,
)
from jurors_registry import DraftRequest, DraftResult, JurorsRegistry
from monitoring.logging import LoggingContext

logger = logging.getLogger(__name__)


@dataclass
class RoundDraft:
    """Draft state of a dispute round."""
    dispute_id: int
    round_id: int
    jurors_number: int
    draft_term_id: int
    draft_lock_amount: int
    selected_jurors: int = 0
    sortition_iteration: int = 0
    delayed_terms: int = 0
    jurors: dict[str, int] = field(default_factory=dict)
    settled: bool = False

    @property
    def drafted(self) -> bool:
        return self.selected_jurors == self.jurors_number

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispute_id": self.dispute_id,
            "round_id": self.round_id,
            "jurors_number": self.jurors_number,
            "draft_term_id": self.draft_term_id,
            "draft_lock_amount": self.draft_lock_amount,
            "selected_jurors": self.selected_jurors,
            "delayed_terms": self.delayed_terms,
            "drafted": self.drafted,
            "settled": self.settled,
            "jurors": [{"juror": j, "weight": w} for j, w in self.jurors.items()],
        }


class DraftCoordinator(ControlledModule):
    """Creates dispute rounds and drafts their jurors batch by batch."""

    def __init__(self, controller: Controller, address: str = "0xdispute-manager"):
        super().__init__(controller, address)
        self._rounds: dict[int, RoundDraft] = {}

    @property
    def registry(self) -> JurorsRegistry:
        return self.controller.get_module(ModuleId.JURORS_REGISTRY)

    def create_round(self, dispute_id: int, jurors_number: int, draft_term_id: int | None = None) -> RoundDraft:
        """
        Open the first round of a dispute.

        Args:
            dispute_id: Dispute identifier, unique within the court
            jurors_number: Jurors requested for the round
            draft_term_id: Term to draft at, defaults to the next term
        """
        if dispute_id in self._rounds:
            raise DisputeAlreadyExists(action="create_round", details={"dispute_id": dispute_id})
        if jurors_number <= 0:
            raise ValueError("jurors_number must be positive")

        term_id = self._ensure_current_term()
        if draft_term_id is None:
            draft_term_id = term_id + 1

        round_draft = RoundDraft(
            dispute_id=dispute_id,
            round_id=0,
            jurors_number=jurors_number,
            draft_term_id=draft_term_id,
            draft_lock_amount=self._config_at(draft_term_id).draft_lock_amount(),
        )
        self._rounds[dispute_id] = round_draft
        self._emit_event("NewDispute", {
            "dispute_id": dispute_id,
            "jurors_number": jurors_number,
            "draft_term_id": draft_term_id,
        })
        return round_draft

    def get_round(self, dispute_id: int) -> RoundDraft:
        round_draft = self._rounds.get(dispute_id)
        if round_draft is None:
            raise DisputeDoesNotExist(action="get_round", details={"dispute_id": dispute_id})
        return round_draft

    def get_juror_weight(self, dispute_id: int, juror: str) -> int:
        return self.get_round(dispute_id).jurors.get(juror, 0)

    def list_rounds(self) -> list[RoundDraft]:
        return list(self._rounds.values())

    def draft(self, dispute_id: int, max_jurors_to_draft: int | None = None) -> DraftResult:
        """
        Draft the next batch of jurors for a dispute round.

        A round whose draft term already passed is drafted at the current term.
        Calling this again in the same term continues from the last sortition
        iteration instead of repeating the same samples.

        Raises:
            RoundAlreadyDrafted: every requested juror is already selected
            DraftTermNotReached: the round's draft term has not started
            RandomnessUnavailable: the term randomness cannot be read
            TooManyTransitions: the clock needs an explicit heartbeat
        """
        round_draft = self.get_round(dispute_id)
        if round_draft.drafted:
            raise RoundAlreadyDrafted(action="draft", details={"dispute_id": dispute_id})

        term_id = self._ensure_current_term()
        if term_id < round_draft.draft_term_id:
            raise DraftTermNotReached(
                action="draft",
                details={"dispute_id": dispute_id, "draft_term_id": round_draft.draft_term_id, "term_id": term_id},
            )

        randomness = self.clock.get_term_randomness(term_id)
        if term_id > round_draft.draft_term_id:
            round_draft.delayed_terms += term_id - round_draft.draft_term_id
            round_draft.draft_term_id = term_id
            round_draft.sortition_iteration = 0

        config = self._config_at(term_id)
        batch = min(config.max_jurors_per_draft_batch, round_draft.jurors_number - round_draft.selected_jurors)
        if max_jurors_to_draft is not None:
            batch = min(batch, max_jurors_to_draft)

        request = DraftRequest(
            dispute_id=dispute_id,
            term_id=term_id,
            term_randomness=randomness,
            round_requested_jurors=round_draft.jurors_number,
            batch_requested_jurors=batch,
            selected_jurors=round_draft.selected_jurors,
            draft_lock_amount=round_draft.draft_lock_amount,
            sortition_iteration=round_draft.sortition_iteration,
        )
        with LoggingContext(dispute_id=dispute_id, term_id=term_id):
            result = self.registry.draft(request, sender=self.address)

        round_draft.selected_jurors += result.accepted_count
        round_draft.sortition_iteration = result.next_iteration
        for juror, weight in zip(result.jurors, result.weights):
            round_draft.jurors[juror] = round_draft.jurors.get(juror, 0) + weight
            self._emit_event("JurorDrafted", {
                "dispute_id": dispute_id,
                "round_id": round_draft.round_id,
                "juror": juror,
                "weight": weight,
            })

        if round_draft.drafted:
            self._emit_event("RoundDrafted", {"dispute_id": dispute_id, "round_id": round_draft.round_id})
            logger.info("Dispute %s round %d fully drafted", dispute_id, round_draft.round_id)
        elif result.accepted_count < batch:
            logger.warning(
                "Dispute %s drafted %d of %d jurors, resume in a later term",
                dispute_id, result.accepted_count, batch,
            )
        return result

    def settle_penalties(self, dispute_id: int, rewarded_jurors: set[str]) -> int:
        """
        Release the round's draft locks, slashing jurors not in ``rewarded_jurors``.

        Returns:
            Total amount collected from slashed jurors
        """
        round_draft = self.get_round(dispute_id)
        if round_draft.settled:
            raise RoundAlreadySettled(action="settle_penalties", details={"dispute_id": dispute_id})

        jurors = list(round_draft.jurors)
        locked_amounts = [round_draft.jurors[j] * round_draft.draft_lock_amount for j in jurors]
        rewarded = [j in rewarded_jurors for j in jurors]

        term_id = self._ensure_current_term()
        collected = self.registry.slash_or_unlock(term_id, jurors, locked_amounts, rewarded, sender=self.address)
        round_draft.settled = True

        self._emit_event("PenaltiesSettled", {
            "dispute_id": dispute_id,
            "round_id": round_draft.round_id,
            "collected_tokens": collected,
        })
        return collected
