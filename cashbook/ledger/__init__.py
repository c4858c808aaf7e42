"""Ledger rules: aggregation, approval and master configuration."""

from cashbook.ledger.aggregator import (
    filtered_stats,
    filtered_transactions,
    global_stats,
    matches,
    review_queue,
    safe_amount,
    sort_for_history,
)
from cashbook.ledger.approval import (
    ApprovalService,
    ApprovalStateMachine,
    InvalidTransitionError,
    TransitionOutcome,
)
from cashbook.ledger.master_config import MasterConfigError, MasterConfigManager
from cashbook.ledger.state import LedgerState

__all__ = [
    # Aggregation
    "filtered_stats",
    "filtered_transactions",
    "global_stats",
    "matches",
    "review_queue",
    "safe_amount",
    "sort_for_history",
    # Approval
    "ApprovalService",
    "ApprovalStateMachine",
    "InvalidTransitionError",
    "TransitionOutcome",
    # Master configuration
    "MasterConfigError",
    "MasterConfigManager",
    # Reactive state
    "LedgerState",
]
