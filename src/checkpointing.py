"""
StakeCourt - Checkpointed Values

A value history indexed by a discrete time (term id). Checkpoints are appended
in ascending time order; a write at the same time as the last checkpoint
overwrites it in place. Historic reads binary-search for the latest checkpoint
at or before the queried time.
"""

from bisect import bisect_right

from court_exceptions import CheckpointPastValue, CheckpointValueTooBig

MAX_UINT192 = 2**192 - 1


class Checkpointing:
    """Append-only history of (time, value) checkpoints."""

    __slots__ = ("_times", "_values")

    def __init__(self):
        self._times: list[int] = []
        self._values: list[int] = []

    def __len__(self) -> int:
        return len(self._times)

    def __repr__(self) -> str:
        return f"Checkpointing({list(zip(self._times, self._values))!r})"

    def add(self, time: int, value: int) -> None:
        """
        Record ``value`` at ``time``.

        Raises:
            CheckpointValueTooBig: value does not fit the value domain
            CheckpointPastValue: time is before the last recorded checkpoint
        """
        if value > MAX_UINT192:
            raise CheckpointValueTooBig(action="add", details={"time": time, "value": value})

        if not self._times or time > self._times[-1]:
            self._times.append(time)
            self._values.append(value)
        elif time == self._times[-1]:
            self._values[-1] = value
        else:
            raise CheckpointPastValue(
                action="add",
                details={"time": time, "last_time": self._times[-1]},
            )

    def get_last(self) -> int:
        return self._values[-1] if self._values else 0

    def last_time(self) -> int | None:
        return self._times[-1] if self._times else None

    def get(self, time: int) -> int:
        """Value of the latest checkpoint at or before ``time``, zero if none."""
        if not self._times:
            return 0
        # Recent reads are the common case
        if time >= self._times[-1]:
            return self._values[-1]
        index = bisect_right(self._times, time)
        return self._values[index - 1] if index > 0 else 0

    def history(self) -> list[tuple[int, int]]:
        """Return a copy of all checkpoints as (time, value) pairs."""
        return list(zip(self._times, self._values))
