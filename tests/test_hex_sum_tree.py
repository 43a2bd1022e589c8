"""
Tests for the checkpointed hexadecimal sum tree (src/hex_sum_tree.py)

Tests cover:
- Sequential inserts, height growth and historic height
- Set / update with sum propagation and all-or-nothing failures
- Sum invariant across levels and times
- Batched search, including historic searches and bounds
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from checkpointing import MAX_UINT192
from court_exceptions import (
    CheckpointPastValue,
    InvalidSearchValues,
    KeyDoesNotExist,
    KeyNotAdjacent,
    OutOfBounds,
    SumTreeOverflow,
    SumTreeUnderflow,
)
from hex_sum_tree import CHILDREN, HexSumTree


def build_tree(values, time=0):
    tree = HexSumTree()
    for value in values:
        tree.insert(time, value)
    return tree


def assert_sum_invariant(tree, time):
    """Every internal node equals the sum of its 16 children at ``time``."""
    for level in range(1, tree.height_at(time) + 1):
        for key in range(0, max(1, tree.next_key >> (4 * level)) + 1):
            children = sum(tree.node_at(level - 1, key * CHILDREN + i, time) for i in range(CHILDREN))
            assert tree.node_at(level, key, time) == children


# ============================================================
# Insert Tests
# ============================================================

class TestInsert:
    """Tests for inserting leaves."""

    def test_new_tree(self):
        tree = HexSumTree()

        assert tree.height() == 1
        assert tree.next_key == 0
        assert tree.total() == 0

    def test_insert_assigns_sequential_keys(self):
        tree = HexSumTree()

        assert tree.insert(0, 10) == 0
        assert tree.insert(0, 5) == 1
        assert tree.insert(1, 0) == 2
        assert tree.next_key == 3
        assert tree.total() == 15

    def test_insert_explicit_adjacent_key(self):
        tree = HexSumTree()
        tree.insert(0, 1, key=0)

        assert tree.insert(0, 2, key=1) == 1

    def test_insert_non_adjacent_key_fails(self):
        tree = HexSumTree()
        tree.insert(0, 1)

        with pytest.raises(KeyNotAdjacent):
            tree.insert(0, 1, key=5)
        assert tree.next_key == 1
        assert tree.total() == 1

    def test_height_grows_past_sixteen_leaves(self):
        tree = build_tree([1] * 16)
        assert tree.height() == 1

        tree.insert(1, 1)
        assert tree.height() == 2
        assert tree.total() == 17
        assert tree.height_at(0) == 1
        assert tree.height_at(1) == 2

    def test_height_grows_again_past_256_leaves(self):
        tree = build_tree([1] * 257)

        assert tree.height() == 3
        assert tree.total() == 257
        assert_sum_invariant(tree, 0)

    def test_total_before_growth_uses_old_root(self):
        tree = build_tree([2] * 16, time=0)
        tree.insert(5, 3)

        assert tree.total_at(4) == 32
        assert tree.total_at(5) == 35

    def test_insert_past_time_fails(self):
        tree = HexSumTree()
        tree.insert(5, 1)

        with pytest.raises(CheckpointPastValue):
            tree.insert(4, 1)
        assert tree.next_key == 1


# ============================================================
# Set / Update Tests
# ============================================================

class TestSetAndUpdate:
    """Tests for changing existing leaves."""

    def test_set_replaces_value(self):
        tree = build_tree([5, 10])
        tree.set(1, 1, 3)

        assert tree.get_item(1) == 3
        assert tree.total() == 8
        assert tree.get_item_at(1, 0) == 10

    def test_set_missing_key_fails(self):
        tree = build_tree([5])

        with pytest.raises(KeyDoesNotExist):
            tree.set(1, 0, 4)

    def test_update_increase_and_decrease(self):
        tree = build_tree([5, 5])
        tree.update(0, 1, 10, True)
        tree.update(1, 2, 3, False)

        assert tree.get_item(0) == 15
        assert tree.get_item(1) == 2
        assert tree.total() == 17
        assert tree.total_at(1) == 20

    def test_update_missing_key_fails(self):
        tree = HexSumTree()

        with pytest.raises(KeyDoesNotExist):
            tree.update(0, 0, 1, True)

    def test_same_time_updates_coalesce(self):
        tree = build_tree([5])
        tree.update(0, 3, 1, True)
        tree.update(0, 3, 1, True)

        assert tree.get_item_at(0, 3) == 7
        assert tree.get_item_at(0, 2) == 5

    def test_overflow_leaves_tree_untouched(self):
        tree = build_tree([MAX_UINT192 - 10, 5])

        with pytest.raises(SumTreeOverflow):
            tree.update(1, 1, 6, True)

        assert tree.get_item(1) == 5
        assert tree.total() == MAX_UINT192 - 5

    def test_underflow_leaves_tree_untouched(self):
        tree = build_tree([5, 5])

        with pytest.raises(SumTreeUnderflow):
            tree.update(0, 1, 6, False)

        assert tree.get_item(0) == 5
        assert tree.total() == 10

    def test_past_update_fails(self):
        tree = build_tree([5])
        tree.update(0, 4, 1, True)

        with pytest.raises(CheckpointPastValue):
            tree.update(0, 3, 1, True)
        assert tree.get_item(0) == 6

    def test_huge_tree_total(self):
        tree = HexSumTree()
        for _ in range(30):
            keys = [tree.insert(0, 10) for _ in range(62)]
            for key in keys[:20]:
                tree.set(key, 0, 0)

        assert tree.total() == 10 * 42 * 30
        assert_sum_invariant(tree, 0)


# ============================================================
# Sum Invariant Tests
# ============================================================

class TestSumInvariant:
    """Internal nodes always equal the sum of their children."""

    def test_invariant_holds_at_every_time(self):
        tree = HexSumTree()
        for time in range(1, 6):
            for _ in range(20):
                tree.insert(time, time)
            for key in range(0, tree.next_key, 7):
                tree.update(key, time, 1, True)

        for time in range(0, 7):
            assert_sum_invariant(tree, time)

    def test_total_at_matches_sum_of_leaves(self):
        tree = HexSumTree()
        for time in range(4):
            for _ in range(10):
                tree.insert(time, 3)

        for time in range(4):
            leaves = sum(tree.get_item_at(key, time) for key in range(tree.next_key))
            assert tree.total_at(time) == leaves == 30 * (time + 1)


# ============================================================
# Search Tests
# ============================================================

class TestSearch:
    """Tests for batched search."""

    def test_search_single_values(self):
        tree = build_tree([2, 1, 4, 1, 8, 6, 7, 1])

        keys, _ = tree.search([0, 4, 7, 17, 21], 0)

        assert keys == [0, 2, 3, 5, 5]

    def test_search_returns_leaf_values(self):
        tree = build_tree([3, 4, 2, 1, 2, 3])

        keys, values = tree.search([14], 0)

        assert keys == [5]
        assert values == [3]

    def test_range_boundaries(self):
        tree = build_tree([1, 5, 8, 18, 22, 31])

        keys, _ = tree.search([0, 1, 5, 6, 13, 14, 31, 32, 84], 0)

        assert keys == [0, 1, 1, 2, 2, 3, 3, 4, 5]

    def test_search_out_of_bounds(self):
        tree = build_tree([10, 10, 10])

        with pytest.raises(OutOfBounds):
            tree.search([1, 5, 8, 18, 22, 31], 0)

    def test_search_empty_tree(self):
        tree = HexSumTree()

        with pytest.raises(OutOfBounds):
            tree.search([0], 0)

    def test_empty_values_list(self):
        tree = build_tree([10])

        assert tree.search([], 0) == ([], [])

    def test_unsorted_values_fail(self):
        tree = build_tree([10, 10])

        with pytest.raises(InvalidSearchValues):
            tree.search([5, 2], 0)

    def test_repeated_values_yield_multiplicity(self):
        tree = build_tree([10, 10])

        keys, _ = tree.search([3, 3, 3, 12], 0)

        assert keys == [0, 0, 0, 1]

    def test_zero_valued_leaves_are_never_selected(self):
        tree = build_tree([0, 5, 0, 0, 5])

        keys, _ = tree.search(list(range(10)), 0)

        assert set(keys) == {1, 4}

    def test_search_across_levels(self):
        values = [i + 1 for i in range(300)]
        tree = build_tree(values)

        targets = [0, 1, 2, 3, 44_000, sum(values) - 1]
        keys, _ = tree.search(targets, 0)

        expected = []
        for target in targets:
            prefix = 0
            for key, value in enumerate(values):
                if prefix <= target < prefix + value:
                    expected.append(key)
                    break
                prefix += value
        assert keys == expected

    def test_sequential_balances_closed_form(self):
        # Leaf k covers [k(k - 1)/2, k(k + 1)/2)
        tree = build_tree(list(range(50)))
        targets = list(range(0, tree.total(), 37))

        keys, _ = tree.search(targets, 0)

        for target, key in zip(targets, keys):
            assert key * (key - 1) // 2 <= target < key * (key + 1) // 2

    def test_search_is_pure(self):
        tree = build_tree([7, 3, 9, 1, 4] * 10)
        targets = [0, 10, 55, 100, 199]

        first = tree.search(targets, 0)
        second = tree.search(targets, 0)

        assert first == second
        assert tree.total() == 240

    def test_historic_search(self):
        tree = build_tree([10] * 200, time=0)
        for time in range(1, 101):
            tree.set(time, time, 10 + time)

        for time in range(1, 101):
            leaves = [10 + key if 1 <= key <= time else 10 for key in range(200)]
            prefix = sum(leaves[:time])
            keys, values = tree.search([prefix, prefix + leaves[time] - 1], time)
            assert keys == [time, time]
            assert values == [10 + time, 10 + time]

            # The leaf after it still reads its original value
            keys, values = tree.search([prefix + leaves[time]], time)
            assert keys == [time + 1]
            assert values == [10]

    def test_search_before_growth(self):
        tree = build_tree([1] * 16, time=0)
        tree.insert(1, 100)

        keys, _ = tree.search([15], 0)
        assert keys == [15]

        with pytest.raises(OutOfBounds):
            tree.search([16], 0)

        keys, _ = tree.search([16, 115], 1)
        assert keys == [16, 16]
