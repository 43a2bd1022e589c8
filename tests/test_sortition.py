"""
Tests for stake-weighted sortition (src/sortition.py)

Tests cover:
- Per-batch bounds over the cumulative weight axis
- Deterministic, sorted sampling inside a slice
- Seed independence across disputes and iterations
- Batched search against a juror sum tree
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from court_exceptions import InvalidInterval, OutOfBounds
from hex_sum_tree import HexSumTree
from sortition import JurorsTreeSortition, draft_batch_bounds, sample, seed_material

RANDOMNESS = bytes(range(32))


class TestDraftBatchBounds:
    """Tests for the proportional batch slice."""

    @pytest.mark.parametrize(
        "selected,batch,expected",
        [
            (0, 2, (0, 4)),
            (2, 2, (4, 9)),
            (4, 1, (9, 12)),
        ],
    )
    def test_bounds_for_five_jurors(self, selected, batch, expected):
        assert draft_batch_bounds(selected, batch, 5, 12) == expected

    def test_full_round_covers_whole_axis(self):
        assert draft_batch_bounds(0, 5, 5, 12) == (0, 12)

    @pytest.mark.parametrize("round_jurors", [0, -1])
    def test_round_without_jurors_fails(self, round_jurors):
        with pytest.raises(InvalidInterval):
            draft_batch_bounds(0, 3, round_jurors, 100)

    def test_zero_total_weight(self):
        assert draft_batch_bounds(1, 2, 5, 0) == (0, 0)


class TestSample:
    """Tests for the deterministic sampler."""

    def test_sample_is_deterministic_and_sorted(self):
        seed = seed_material(RANDOMNESS, 1, 0)

        first = sample(seed, 10, 100, 200)
        second = sample(seed, 10, 100, 200)

        assert first == second
        assert first == sorted(first)
        assert all(100 <= point < 200 for point in first)

    def test_sample_size(self):
        assert len(sample(seed_material(RANDOMNESS, 1, 0), 7, 0, 10)) == 7
        assert sample(seed_material(RANDOMNESS, 1, 0), 0, 0, 10) == []

    def test_empty_interval_returns_low(self):
        assert sample(seed_material(RANDOMNESS, 1, 0), 3, 42, 42) == [42, 42, 42]

    def test_inverted_interval_fails(self):
        with pytest.raises(InvalidInterval):
            sample(seed_material(RANDOMNESS, 1, 0), 1, 10, 5)

    def test_iteration_changes_points(self):
        low, high = 0, 10**30

        first = sample(seed_material(RANDOMNESS, 1, 0), 5, low, high)
        retry = sample(seed_material(RANDOMNESS, 1, 1), 5, low, high)

        assert first != retry

    def test_dispute_changes_points(self):
        low, high = 0, 10**30

        one = sample(seed_material(RANDOMNESS, 1, 0), 5, low, high)
        two = sample(seed_material(RANDOMNESS, 2, 0), 5, low, high)

        assert one != two

    def test_seed_material_layout(self):
        seed = seed_material(RANDOMNESS, 3, 4)

        assert len(seed) == 96
        assert seed[:32] == RANDOMNESS
        assert int.from_bytes(seed[32:64], "big") == 3
        assert int.from_bytes(seed[64:], "big") == 4

    @pytest.mark.parametrize("randomness", [b"", b"\x01", bytes(31), bytes(33), bytes(64)])
    def test_randomness_must_be_one_word(self, randomness):
        with pytest.raises(ValueError):
            seed_material(randomness, 0, 0)


class TestJurorsTreeSortition:
    """Tests for the batched weighted search."""

    @pytest.fixture
    def tree(self):
        tree = HexSumTree()
        for balance in [1, 2, 5, 3, 1]:
            tree.insert(0, balance)
        return tree

    def test_batch_lands_in_its_slice(self, tree):
        sortition = JurorsTreeSortition(tree)

        keys, balances = sortition.batched_random_search(RANDOMNESS, 1, 0, 2, 2, 5, 0)

        # Slice [4, 9) only covers keys 2 and 3
        assert len(keys) == 2
        assert set(keys) <= {2, 3}
        assert all(balance == tree.get_item(key) for key, balance in zip(keys, balances))

    def test_search_is_deterministic(self, tree):
        sortition = JurorsTreeSortition(tree)

        first = sortition.batched_random_search(RANDOMNESS, 7, 0, 0, 5, 5, 0)
        second = sortition.batched_random_search(RANDOMNESS, 7, 0, 0, 5, 5, 0)

        assert first == second
        assert first[0] == sorted(first[0])

    def test_empty_tree_is_out_of_bounds(self):
        sortition = JurorsTreeSortition(HexSumTree())

        with pytest.raises(OutOfBounds):
            sortition.batched_random_search(RANDOMNESS, 1, 0, 0, 3, 3, 0)

    def test_weights_follow_balances(self):
        tree = HexSumTree()
        tree.insert(0, 1)
        tree.insert(0, 99)
        sortition = JurorsTreeSortition(tree)

        hits = [0, 0]
        for dispute_id in range(50):
            keys, _ = sortition.batched_random_search(RANDOMNESS, dispute_id, 0, 0, 4, 4, 0)
            for key in keys:
                hits[key] += 1

        assert hits[1] > hits[0]
