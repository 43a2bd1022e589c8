"""
StakeCourt - Court Clock

Tracks court terms and their randomness.

Terms are fixed-length time epochs. Term 0 is the pre-court term and ends when
the first term starts. Transitions are explicit (heartbeat) so every state
change happens inside an invocation; nothing advances in the background.

Each term records the block number whose hash becomes the term randomness
(``randomness_bn``, the block after the one that opened the term). The hash is
unknowable until that block is mined and only retrievable within a bounded
window of recent blocks; once computed it is stored for good.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any

from court_config import DEFAULT_RANDOMNESS_WINDOW
from court_events import EventEmitter
from court_exceptions import (
    BadFirstTermStartTime,
    BadTermDuration,
    InvalidTransitionTerms,
    TermDoesNotExist,
    TermRandomnessNotYet,
    TermRandomnessUnavailable,
    TooManyTransitions,
)
from monitoring import metrics

logger = logging.getLogger(__name__)

ZERO_HASH = b"\x00" * 32


class SimulatedChain:
    """
    Block source for the clock.

    Provides a block number, a timestamp and block hashes that are only
    retrievable for the most recent ``hash_window`` blocks.
    """

    def __init__(
        self,
        seed: bytes = b"stakecourt",
        block_number: int = 1,
        timestamp: int | None = None,
        hash_window: int = DEFAULT_RANDOMNESS_WINDOW,
    ):
        self.seed = seed
        self.block_number = block_number
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.hash_window = hash_window

    def mine(self, blocks: int = 1) -> int:
        """Advance the chain by ``blocks`` blocks and return the new block number."""
        self.block_number += blocks
        return self.block_number

    def advance_time(self, seconds: int) -> int:
        self.timestamp += seconds
        return self.timestamp

    def block_hash(self, number: int) -> bytes:
        if number >= self.block_number or self.block_number - number > self.hash_window:
            return ZERO_HASH
        return hashlib.sha256(self.seed + number.to_bytes(32, "big")).digest()


@dataclass
class Term:
    """A court term."""
    start_time: int
    randomness_bn: int
    randomness: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time,
            "randomness_bn": self.randomness_bn,
            "randomness": self.randomness.hex() if self.randomness else None,
        }


class CourtClock(EventEmitter):
    """Term tracking and per-term randomness."""

    def __init__(
        self,
        chain: SimulatedChain,
        term_duration: int,
        first_term_start_time: int,
        max_auto_term_transitions: int = 1,
        randomness_window: int = DEFAULT_RANDOMNESS_WINDOW,
    ):
        if term_duration <= 0:
            raise BadTermDuration(action="init", details={"term_duration": term_duration})
        if first_term_start_time < chain.timestamp + term_duration:
            raise BadFirstTermStartTime(
                action="init",
                details={
                    "first_term_start_time": first_term_start_time,
                    "earliest": chain.timestamp + term_duration,
                },
            )

        super().__init__()
        self.chain = chain
        self.term_duration = term_duration
        self.max_auto_term_transitions = max_auto_term_transitions
        self.randomness_window = randomness_window

        self._terms: list[Term] = [
            Term(start_time=first_term_start_time - term_duration, randomness_bn=chain.block_number + 1)
        ]

    # ==================== TERM TRANSITIONS ====================

    def get_last_ensured_term_id(self) -> int:
        return len(self._terms) - 1

    def get_needed_term_transitions(self) -> int:
        """Number of whole terms elapsed since the last ensured term started."""
        current = self._terms[-1]
        if self.chain.timestamp < current.start_time + self.term_duration:
            return 0
        return (self.chain.timestamp - current.start_time) // self.term_duration

    def get_current_term_id(self) -> int:
        return self.get_last_ensured_term_id() + self.get_needed_term_transitions()

    def heartbeat(self, max_requested_transitions: int) -> int:
        """
        Transition up to ``max_requested_transitions`` terms.

        Returns:
            The last ensured term id after the transitions

        Raises:
            InvalidTransitionTerms: nothing to transition or a zero maximum
        """
        needed = self.get_needed_term_transitions()
        transitions = min(needed, max_requested_transitions)
        if transitions <= 0:
            raise InvalidTransitionTerms(
                action="heartbeat",
                details={"needed": needed, "max_requested": max_requested_transitions},
            )

        previous_term_id = self.get_last_ensured_term_id()
        for _ in range(transitions):
            previous = self._terms[-1]
            self._terms.append(
                Term(
                    start_time=previous.start_time + self.term_duration,
                    randomness_bn=self.chain.block_number + 1,
                )
            )

        current_term_id = self.get_last_ensured_term_id()
        self._emit_event("Heartbeat", {
            "previous_term_id": previous_term_id,
            "current_term_id": current_term_id,
        })
        metrics.increment("term_transitions_total", transitions)
        metrics.set_gauge("current_term_id", current_term_id)
        logger.info("Court term transitioned %d -> %d", previous_term_id, current_term_id)
        return current_term_id

    def ensure_current_term(self) -> int:
        """
        Bring the clock up to date, within the automatic transition limit.

        Raises:
            TooManyTransitions: more terms are pending than may be done implicitly
        """
        needed = self.get_needed_term_transitions()
        if needed == 0:
            return self.get_last_ensured_term_id()
        if needed > self.max_auto_term_transitions:
            raise TooManyTransitions(
                action="ensure_current_term",
                details={"needed": needed, "max_auto": self.max_auto_term_transitions},
            )
        return self.heartbeat(needed)

    # ==================== TERMS & RANDOMNESS ====================

    def get_term(self, term_id: int) -> Term:
        if term_id < 0 or term_id >= len(self._terms):
            raise TermDoesNotExist(action="get_term", details={"term_id": term_id})
        return self._terms[term_id]

    def get_term_randomness(self, term_id: int) -> bytes:
        """
        Return the randomness of an ensured term, computing and storing it on first use.

        Raises:
            TermRandomnessNotYet: the randomness block has not been mined
            TermRandomnessUnavailable: the randomness block hash has expired
        """
        term = self.get_term(term_id)
        if term.randomness is not None:
            return term.randomness

        block_number = self.chain.block_number
        details = {"term_id": term_id, "randomness_bn": term.randomness_bn, "block_number": block_number}
        if block_number <= term.randomness_bn:
            raise TermRandomnessNotYet(action="get_term_randomness", details=details)
        if block_number - term.randomness_bn > self.randomness_window:
            raise TermRandomnessUnavailable(action="get_term_randomness", details=details)

        term.randomness = self.chain.block_hash(term.randomness_bn)
        logger.debug("Computed randomness for term %d", term_id)
        return term.randomness

    def ensure_current_term_randomness(self) -> bytes:
        return self.get_term_randomness(self.ensure_current_term())

    def get_info(self) -> dict[str, Any]:
        term_id = self.get_last_ensured_term_id()
        return {
            "last_ensured_term_id": term_id,
            "current_term_id": self.get_current_term_id(),
            "needed_transitions": self.get_needed_term_transitions(),
            "term_duration": self.term_duration,
            "block_number": self.chain.block_number,
            "timestamp": self.chain.timestamp,
            "term": self._terms[term_id].to_dict(),
        }

