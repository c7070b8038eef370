"""Balance replay package."""

from ledger_engine.balance.replay import (
    STRATEGIES,
    asset_delta,
    compute_balance,
    compute_balances,
    liability_delta,
    net_effect,
    partition_by_account,
    replay_history,
    solve_opening_balance,
)

__all__ = [
    "STRATEGIES",
    "asset_delta",
    "compute_balance",
    "compute_balances",
    "liability_delta",
    "net_effect",
    "partition_by_account",
    "replay_history",
    "solve_opening_balance",
]
