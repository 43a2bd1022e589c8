"""
StakeCourt - Court Token Ledger

In-memory token ledger used for juror stake custody. The jurors registry
holds staked tokens under its own address and moves them back on unstake.
"""

import logging
from collections import defaultdict

from court_events import EventEmitter
from court_exceptions import InsufficientTokenBalance, InvalidZeroAmount

logger = logging.getLogger(__name__)

BURN_ADDRESS = "0x000000000000000000000000000000000000dEaD"


class CourtToken(EventEmitter):
    """Minimal fungible token ledger."""

    def __init__(self, symbol: str = "ANJ"):
        super().__init__()
        self.symbol = symbol
        self._balances: dict[str, int] = defaultdict(int)
        self.total_supply = 0

    def balance_of(self, owner: str) -> int:
        return self._balances.get(owner, 0)

    def mint(self, to: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidZeroAmount(component="court_token", action="mint")
        self._balances[to] += amount
        self.total_supply += amount
        self._emit_event("Transfer", {"from": None, "to": to, "amount": amount})

    def transfer(self, sender: str, to: str, amount: int) -> None:
        """Move ``amount`` from ``sender`` to ``to``."""
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientTokenBalance(
                action="transfer",
                details={"owner": sender, "balance": balance, "amount": amount},
            )
        self._balances[sender] = balance - amount
        self._balances[to] += amount
        self._emit_event("Transfer", {"from": sender, "to": to, "amount": amount})
