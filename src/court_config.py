"""
StakeCourt - Court Configuration

Court parameters are term-scoped: the controller keeps a history of CourtConfig
values and each term reads the latest one scheduled at or before it.

Configuration sources:
- Environment variables (STAKECOURT_*), see CourtConfig.from_env
- YAML files, see CourtConfig.from_yaml
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from court_exceptions import InvalidConfig

PCT_BASE = 10000  # Basis points
DEFAULT_MAX_DRAFT_ITERATIONS = 20
DEFAULT_RANDOMNESS_WINDOW = 256  # Blocks a block hash stays retrievable


@dataclass
class CourtConfig:
    """Parameters that govern terms, balances and drafting."""
    term_duration: int = 8 * 60 * 60  # Seconds
    first_term_start_time: int = 0
    min_active_balance: int = 100 * 10**18
    penalty_pct: int = 1000  # 10% of the min active balance locked per draft
    max_jurors_per_draft_batch: int = 81
    max_draft_iterations: int = DEFAULT_MAX_DRAFT_ITERATIONS
    max_auto_term_transitions: int = 1
    total_active_balance_limit: int = 2**192 - 1
    randomness_window: int = DEFAULT_RANDOMNESS_WINDOW

    def draft_lock_amount(self) -> int:
        """Balance locked per drafted weight unit."""
        return self.min_active_balance * self.penalty_pct // PCT_BASE

    def validate(self) -> "CourtConfig":
        """
        Check parameter ranges.

        Returns:
            self, to allow chaining

        Raises:
            InvalidConfig: a parameter is out of range
        """
        problems = []
        if self.term_duration <= 0:
            problems.append("term_duration must be positive")
        if self.min_active_balance <= 0:
            problems.append("min_active_balance must be positive")
        if not 0 <= self.penalty_pct <= PCT_BASE:
            problems.append(f"penalty_pct must be between 0 and {PCT_BASE}")
        if self.max_jurors_per_draft_batch <= 0:
            problems.append("max_jurors_per_draft_batch must be positive")
        if self.max_draft_iterations <= 0:
            problems.append("max_draft_iterations must be positive")
        if self.max_auto_term_transitions <= 0:
            problems.append("max_auto_term_transitions must be positive")
        if self.total_active_balance_limit < self.min_active_balance:
            problems.append("total_active_balance_limit must be at least min_active_balance")
        if self.randomness_window <= 0:
            problems.append("randomness_window must be positive")

        if problems:
            raise InvalidConfig(
                message="; ".join(problems),
                action="validate",
                details={"problems": problems},
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CourtConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        try:
            values = {k: int(v) for k, v in data.items() if k in known}
        except (TypeError, ValueError) as e:
            raise InvalidConfig(message=f"Non-integer court parameter: {e}", action="from_dict", cause=e)
        return cls(**values)

    @classmethod
    def from_env(cls) -> "CourtConfig":
        """Create configuration from environment variables."""
        defaults = cls()
        return cls(
            term_duration=int(os.getenv("STAKECOURT_TERM_DURATION", str(defaults.term_duration))),
            first_term_start_time=int(os.getenv("STAKECOURT_FIRST_TERM_START_TIME", "0")),
            min_active_balance=int(
                os.getenv("STAKECOURT_MIN_ACTIVE_BALANCE", str(defaults.min_active_balance))
            ),
            penalty_pct=int(os.getenv("STAKECOURT_PENALTY_PCT", str(defaults.penalty_pct))),
            max_jurors_per_draft_batch=int(
                os.getenv("STAKECOURT_MAX_JURORS_PER_DRAFT_BATCH", str(defaults.max_jurors_per_draft_batch))
            ),
            max_draft_iterations=int(
                os.getenv("STAKECOURT_MAX_DRAFT_ITERATIONS", str(defaults.max_draft_iterations))
            ),
            max_auto_term_transitions=int(
                os.getenv("STAKECOURT_MAX_AUTO_TERM_TRANSITIONS", str(defaults.max_auto_term_transitions))
            ),
            total_active_balance_limit=int(
                os.getenv("STAKECOURT_TOTAL_ACTIVE_BALANCE_LIMIT", str(defaults.total_active_balance_limit))
            ),
            randomness_window=int(
                os.getenv("STAKECOURT_RANDOMNESS_WINDOW", str(defaults.randomness_window))
            ),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CourtConfig":
        """
        Load configuration from the ``court`` section of a YAML file.

        A file without a ``court`` section is read as a flat mapping.
        """
        data = load_yaml(path)
        return cls.from_dict(data.get("court", data))


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping, raising InvalidConfig on malformed input."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidConfig(message=f"Invalid YAML in court config: {e}", action="load_yaml", cause=e)

    if not data:
        raise InvalidConfig(message=f"Empty court config file: {path}", action="load_yaml")
    if not isinstance(data, dict):
        raise InvalidConfig(message="Court config must be a mapping", action="load_yaml")
    return data
