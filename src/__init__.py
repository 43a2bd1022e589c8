"""
StakeCourt - Stake-Weighted Juror Sortition Court

Selects juror panels for dispute rounds through stake-weighted random sampling
over a checkpointed sum tree of juror active balances.

Core Components:
    - HexSumTree: Checkpointed 16-way sum tree with batched historic search
    - JurorsTreeSortition: Batched weighted sampling over the tree
    - JurorsRegistry: Juror balances, activation lifecycle and drafting
    - CourtClock: Terms and per-term randomness
    - Controller: Governors, modules and term-scoped configuration
    - DraftCoordinator: Dispute-side round drafting

Infrastructure:
    - monitoring: Metrics, structured logging and request middleware
    - api: Flask HTTP API

Usage:
    from court import create_court

    court = create_court()
    court.token.mint("0xjuror", 10_000 * 10**18)
    court.registry.stake("0xjuror", 10_000 * 10**18, activate=True)
"""

__version__ = "0.1.0"
