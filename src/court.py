"""
StakeCourt - Court Assembly

Wires the clock, controller, token, jurors registry and draft coordinator into
a ready-to-use court, and runs YAML-described draft simulations.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from controller import Controller, ModuleId
from court_clock import CourtClock, SimulatedChain
from court_config import CourtConfig, load_yaml
from court_exceptions import AvailabilityError
from court_token import CourtToken
from draft_coordinator import DraftCoordinator
from jurors_registry import JurorsRegistry

logger = logging.getLogger(__name__)

DEFAULT_GOVERNOR = "0xgovernor"
BLOCKS_PER_TERM = 10


@dataclass
class Court:
    """Handles to every component of an assembled court."""
    config: CourtConfig
    chain: SimulatedChain
    clock: CourtClock
    controller: Controller
    token: CourtToken
    registry: JurorsRegistry
    coordinator: DraftCoordinator
    governor: str

    def advance_terms(self, terms: int = 1, blocks_per_term: int = BLOCKS_PER_TERM) -> int:
        """Move time and blocks forward by whole terms and transition the clock."""
        self.chain.advance_time(terms * self.clock.term_duration)
        self.clock.heartbeat(terms)
        self.chain.mine(blocks_per_term)
        return self.clock.get_last_ensured_term_id()

    def get_info(self) -> dict[str, Any]:
        return {
            "clock": self.clock.get_info(),
            "registry": self.registry.get_statistics(),
            "config": self.config.to_dict(),
            "disputes": len(self.coordinator.list_rounds()),
        }


def create_court(
    config: CourtConfig | None = None,
    chain: SimulatedChain | None = None,
    governor: str = DEFAULT_GOVERNOR,
) -> Court:
    """
    Assemble a court with a single governor holding every role.

    A config without ``first_term_start_time`` starts the first term one term
    duration after the chain's current timestamp.
    """
    config = (config or CourtConfig()).validate()
    chain = chain or SimulatedChain()
    if config.first_term_start_time == 0:
        config = replace(config, first_term_start_time=chain.timestamp + config.term_duration)

    clock = CourtClock(
        chain,
        config.term_duration,
        config.first_term_start_time,
        max_auto_term_transitions=config.max_auto_term_transitions,
        randomness_window=config.randomness_window,
    )
    controller = Controller(clock, config, governor, governor, governor)
    token = CourtToken()
    registry = JurorsRegistry(controller, token, config.total_active_balance_limit)
    coordinator = DraftCoordinator(controller)
    controller.set_modules(
        {ModuleId.JURORS_REGISTRY: registry, ModuleId.DISPUTE_MANAGER: coordinator},
        sender=governor,
    )
    return Court(config, chain, clock, controller, token, registry, coordinator, governor)


def run_simulation(data: dict[str, Any]) -> dict[str, Any]:
    """
    Run a draft simulation described by a mapping.

    Expected keys:
        court: CourtConfig fields
        jurors: list of {address, stake} (stake is activated at term 0)
        disputes: list of {id, jurors}
        max_terms: terms to keep resuming unfinished drafts (default 10)

    Returns:
        Report with every round's draft state and the final court info
    """
    court = create_court(CourtConfig.from_dict(data.get("court", {})), SimulatedChain(timestamp=0))

    for juror in data.get("jurors", []):
        address = juror["address"]
        amount = int(juror["stake"])
        court.token.mint(address, amount)
        court.registry.stake(address, amount, activate=True)

    court.advance_terms(1)
    for dispute in data.get("disputes", []):
        court.coordinator.create_round(int(dispute["id"]), int(dispute["jurors"]),
                                       draft_term_id=court.clock.get_last_ensured_term_id())

    max_terms = int(data.get("max_terms", 10))
    drafts = []
    for _ in range(max_terms):
        pending = [r for r in court.coordinator.list_rounds() if not r.drafted]
        if not pending:
            break
        for round_draft in pending:
            try:
                result = court.coordinator.draft(round_draft.dispute_id)
            except AvailabilityError as e:
                logger.warning("Draft of dispute %s postponed: %s", round_draft.dispute_id, e)
                continue
            drafts.append({
                "dispute_id": round_draft.dispute_id,
                "term_id": round_draft.draft_term_id,
                **result.to_dict(),
            })
        court.advance_terms(1)

    return {
        "drafts": drafts,
        "rounds": [r.to_dict() for r in court.coordinator.list_rounds()],
        "court": court.get_info(),
    }


def run_simulation_file(path: str | Path) -> dict[str, Any]:
    return run_simulation(load_yaml(path))
