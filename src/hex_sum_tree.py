"""
StakeCourt - Checkpointed Hexadecimal Sum Tree

A 16-way tree where each leaf holds a juror's active balance and each internal
node holds the sum of its children. Every node value, as well as the tree
height, is a Checkpointing history keyed by term id, so the tree can be queried
as it was at any past term.

Layout:
- Leaves live at level 0, keyed by insertion order (0, 1, 2, ...)
- Node (level, key) has children (level - 1, key * 16 + i) for i in 0..15
- The root is (height, 0); the height grows when the leaves outgrow 16**height

The batched search resolves many sorted cumulative values in a single top-down
pass, partitioning the targets against the children's boundaries once per level.
"""

import logging
from bisect import bisect_left

from checkpointing import MAX_UINT192, Checkpointing
from court_exceptions import (
    CheckpointPastValue,
    InvalidSearchValues,
    KeyDoesNotExist,
    KeyNotAdjacent,
    OutOfBounds,
    SumTreeOverflow,
    SumTreeUnderflow,
)

logger = logging.getLogger(__name__)

CHILDREN = 16
BITS_IN_NIBBLE = 4
ITEMS_LEVEL = 0
BASE_KEY = 0


class HexSumTree:
    """Checkpointed 16-way sum tree."""

    def __init__(self):
        self._nodes: dict[tuple[int, int], Checkpointing] = {}
        self._height = Checkpointing()
        self._height.add(0, ITEMS_LEVEL + 1)
        self.next_key = BASE_KEY

    # ==================== MUTATIONS ====================

    def insert(self, time: int, value: int, key: int | None = None) -> int:
        """
        Insert a new leaf holding ``value`` at ``time``.

        Leaves are keyed sequentially; passing an explicit ``key`` that is not the
        next free one raises KeyNotAdjacent.

        Returns:
            The key assigned to the new leaf
        """
        new_key = self.next_key
        if key is not None and key != new_key:
            raise KeyNotAdjacent(
                action="insert", details={"key": key, "next_key": new_key}
            )
        self._check_update(new_key, time, value, True)

        height = self.height()
        if new_key >= CHILDREN ** height:
            self._grow(time, height)

        self.next_key = new_key + 1
        if value > 0:
            self._update_path(new_key, time, value, True)
        else:
            self._node(ITEMS_LEVEL, new_key).add(time, 0)
        return new_key

    def set(self, key: int, time: int, value: int) -> None:
        """Replace the value of an existing leaf."""
        self._ensure_key(key, "set")
        old_value = self.get_item(key)
        if value >= old_value:
            self.update(key, time, value - old_value, True)
        else:
            self.update(key, time, old_value - value, False)

    def update(self, key: int, time: int, delta: int, positive: bool) -> None:
        """
        Add (``positive``) or subtract ``delta`` from a leaf and all its ancestors.

        The whole path is validated before anything is written, so a failing
        update leaves the tree untouched.

        Raises:
            KeyDoesNotExist: the key was never inserted
            CheckpointPastValue: time is before the latest recorded change
            SumTreeOverflow / SumTreeUnderflow: a sum leaves the value domain
        """
        self._ensure_key(key, "update")
        self._check_update(key, time, delta, positive)
        self._update_path(key, time, delta, positive)

    def _ensure_key(self, key: int, action: str) -> None:
        if key < BASE_KEY or key >= self.next_key:
            raise KeyDoesNotExist(action=action, details={"key": key, "next_key": self.next_key})

    def _check_update(self, key: int, time: int, delta: int, positive: bool) -> None:
        # Every change reaches the root, so the root carries the latest time
        # and the largest sum on any path.
        root = self._nodes.get((self.height(), BASE_KEY))
        last_time = root.last_time() if root is not None else self._height.last_time()
        if last_time is not None and time < last_time:
            raise CheckpointPastValue(
                component="sum_tree",
                action="update",
                details={"key": key, "time": time, "last_time": last_time},
            )

        if positive:
            if self.total() + delta > MAX_UINT192:
                raise SumTreeOverflow(action="update", details={"key": key, "delta": delta})
        elif key < self.next_key and self.get_item(key) < delta:
            raise SumTreeUnderflow(action="update", details={"key": key, "delta": delta})

    def _update_path(self, key: int, time: int, delta: int, positive: bool) -> None:
        for level in range(ITEMS_LEVEL, self.height() + 1):
            node = self._node(level, key >> (BITS_IN_NIBBLE * level))
            last = node.get_last()
            node.add(time, last + delta if positive else last - delta)

    def _grow(self, time: int, height: int) -> None:
        new_height = height + 1
        # The new root starts with the whole tree below it
        total = self.total()
        self._height.add(time, new_height)
        self._node(new_height, BASE_KEY).add(time, total)
        logger.debug("Sum tree grew to height %d at time %d", new_height, time)

    def _node(self, level: int, key: int) -> Checkpointing:
        node = self._nodes.get((level, key))
        if node is None:
            node = Checkpointing()
            self._nodes[(level, key)] = node
        return node

    # ==================== QUERIES ====================

    def height(self) -> int:
        return self._height.get_last()

    def height_at(self, time: int) -> int:
        return max(self._height.get(time), ITEMS_LEVEL + 1)

    def get_item(self, key: int) -> int:
        return self.node(ITEMS_LEVEL, key)

    def get_item_at(self, key: int, time: int) -> int:
        return self.node_at(ITEMS_LEVEL, key, time)

    def node(self, level: int, key: int) -> int:
        node = self._nodes.get((level, key))
        return node.get_last() if node is not None else 0

    def node_at(self, level: int, key: int, time: int) -> int:
        node = self._nodes.get((level, key))
        return node.get(time) if node is not None else 0

    def total(self) -> int:
        return self.node(self.height(), BASE_KEY)

    def total_at(self, time: int) -> int:
        return self.node_at(self.height_at(time), BASE_KEY, time)

    def search(self, values: list[int], time: int) -> tuple[list[int], list[int]]:
        """
        Resolve sorted cumulative values to leaf keys as of ``time``.

        A value ``v`` resolves to the leaf whose range [prefix, prefix + leaf)
        contains it, where prefix is the sum of all leaves to its left.

        Args:
            values: Cumulative values, sorted non-decreasingly
            time: Term id at which the tree is read

        Returns:
            (keys, leaf_values), both aligned with ``values``

        Raises:
            InvalidSearchValues: values are not sorted
            OutOfBounds: a value is at or beyond the total at ``time``
        """
        count = len(values)
        if count == 0:
            return [], []

        for i in range(1, count):
            if values[i] < values[i - 1]:
                raise InvalidSearchValues(action="search", details={"index": i})
        if values[0] < 0:
            raise InvalidSearchValues(action="search", details={"index": 0})

        total = self.total_at(time)
        if values[-1] >= total:
            raise OutOfBounds(
                action="search",
                details={"value": values[-1], "total": total, "time": time},
            )

        keys = [0] * count
        leaf_values = [0] * count
        self._search_node(self.height_at(time), BASE_KEY, values, 0, count, 0, time, keys, leaf_values)
        return keys, leaf_values

    def _search_node(self, level, node_key, values, start, end, offset, time, keys, leaf_values):
        child_level = level - 1
        first_child = node_key << BITS_IN_NIBBLE
        index = start

        for i in range(CHILDREN):
            if index >= end:
                break
            child_key = first_child + i
            child_value = self.node_at(child_level, child_key, time)
            upper = offset + child_value
            stop = bisect_left(values, upper, index, end)

            if stop > index:
                if child_level == ITEMS_LEVEL:
                    for j in range(index, stop):
                        keys[j] = child_key
                        leaf_values[j] = child_value
                else:
                    self._search_node(
                        child_level, child_key, values, index, stop, offset, time, keys, leaf_values
                    )
            index = stop
            offset = upper
