"""
StakeCourt - Juror Tree Sortition

Stake-weighted random sampling over the checkpointed sum tree.

A round requesting N jurors is usually drafted in several batches. Each batch
samples from its own proportional slice of the cumulative weight axis:

    low  = selected * total_weight // round_requested
    high = (selected + batch) * total_weight // round_requested

so that later batches do not keep re-sampling near zero. Points inside a slice
are derived from the term randomness, the dispute id, the retry iteration and
the item index, which keeps different disputes of the same term and different
retry iterations independent of each other.
"""

import hashlib
import logging

from court_exceptions import InvalidInterval
from hex_sum_tree import HexSumTree

logger = logging.getLogger(__name__)

WORD_SIZE = 32


def _word(value: int) -> bytes:
    return value.to_bytes(WORD_SIZE, "big")


def draft_batch_bounds(
    selected_jurors: int,
    batch_requested_jurors: int,
    round_requested_jurors: int,
    total_weight: int,
) -> tuple[int, int]:
    """
    Return the (low, high) slice of [0, total_weight) for a draft batch.

    Raises:
        InvalidInterval: the round requests no jurors
    """
    if round_requested_jurors <= 0:
        raise InvalidInterval(
            action="draft_batch_bounds",
            details={"round_requested_jurors": round_requested_jurors},
        )
    low = selected_jurors * total_weight // round_requested_jurors
    high = (selected_jurors + batch_requested_jurors) * total_weight // round_requested_jurors
    return low, high


def seed_material(term_randomness: bytes, dispute_id: int, iteration: int) -> bytes:
    """Pack the per-draft seed: randomness, dispute id and retry iteration."""
    if len(term_randomness) != WORD_SIZE:
        raise ValueError(f"term randomness must be {WORD_SIZE} bytes, got {len(term_randomness)}")
    return bytes(term_randomness) + _word(dispute_id) + _word(iteration)


def sample(seed: bytes, batch_size: int, low: int, high: int) -> list[int]:
    """
    Produce ``batch_size`` sorted cumulative-balance points in [low, high).

    When the interval is empty every point is ``low``.

    Raises:
        InvalidInterval: high is below low
    """
    if high < low:
        raise InvalidInterval(action="sample", details={"low": low, "high": high})

    interval = high - low
    points = []
    for i in range(batch_size):
        if interval == 0:
            points.append(low)
            continue
        digest = hashlib.sha256(seed + _word(i)).digest()
        points.append(low + int.from_bytes(digest, "big") % interval)

    points.sort()
    return points


class JurorsTreeSortition:
    """Batched weighted search over a HexSumTree of juror active balances."""

    def __init__(self, tree: HexSumTree):
        self.tree = tree

    def batched_random_search(
        self,
        term_randomness: bytes,
        dispute_id: int,
        term_id: int,
        selected_jurors: int,
        batch_requested_jurors: int,
        round_requested_jurors: int,
        sortition_iteration: int,
    ) -> tuple[list[int], list[int]]:
        """
        Sample a batch of juror keys weighted by active balance at ``term_id``.

        Returns:
            (keys, active_balances) aligned with the sorted sampled points

        Raises:
            OutOfBounds: there is no active balance at ``term_id``
        """
        total_weight = self.tree.total_at(term_id)
        low, high = draft_batch_bounds(
            selected_jurors, batch_requested_jurors, round_requested_jurors, total_weight
        )
        points = sample(
            seed_material(term_randomness, dispute_id, sortition_iteration),
            batch_requested_jurors,
            low,
            high,
        )
        logger.debug(
            "Sortition dispute=%s term=%s iteration=%s bounds=[%s, %s) points=%d",
            dispute_id, term_id, sortition_iteration, low, high, len(points),
        )
        return self.tree.search(points, term_id)
