"""
Reactive Ledger State

Holds the latest snapshot pushed by the store and derives everything the
screens show from it. Every snapshot replaces the previous one wholesale
and the stats are recomputed from scratch.

Usage:
    state = LedgerState(store)
    await state.start()
    state.on_change(lambda s: print(s.stats.balance))
    ...
    state.close()
"""

from typing import Callable, Optional

import structlog

from cashbook.ledger.aggregator import (
    filtered_stats,
    filtered_transactions,
    global_stats,
    review_queue,
    sort_for_history,
)
from cashbook.models.master import MasterConfig
from cashbook.models.transaction import LedgerStats, ReportFilter, Transaction
from cashbook.services.storage import DocumentStoreInterface


logger = structlog.get_logger(__name__)

ChangeListener = Callable[["LedgerState"], None]


class LedgerState:
    """Latest transaction snapshot, master configuration and derived stats."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store
        self._transactions: tuple[Transaction, ...] = ()
        self._master: Optional[MasterConfig] = None
        self._stats = LedgerStats()
        self._listeners: list[ChangeListener] = []
        self._unsubscribes: list[Callable[[], None]] = []

    async def start(self) -> None:
        """Subscribe to the store. Both snapshots arrive before this returns."""
        if self._unsubscribes:
            return
        self._unsubscribes.append(
            await self._store.subscribe_collection(self._on_transactions)
        )
        self._unsubscribes.append(
            await self._store.subscribe_document(self._on_master)
        )
        logger.info(
            "ledger_state_started",
            transactions=len(self._transactions),
            has_master=self._master is not None,
        )

    def close(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()

    @property
    def started(self) -> bool:
        return bool(self._unsubscribes)

    def on_change(self, callback: ChangeListener) -> Callable[[], None]:
        """Register a callback run after every snapshot. Returns a remover."""
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    # ------------------------------------------------------------------
    # Store callbacks
    # ------------------------------------------------------------------

    def _on_transactions(self, snapshot: tuple[Transaction, ...]) -> None:
        self._transactions = tuple(snapshot)
        self._stats = global_stats(self._transactions)
        self._notify()

    def _on_master(self, config: MasterConfig) -> None:
        self._master = config
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error("ledger_listener_failed", error=str(e))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[Transaction, ...]:
        return self._transactions

    @property
    def master(self) -> Optional[MasterConfig]:
        return self._master

    @property
    def stats(self) -> LedgerStats:
        return self._stats

    def history(self) -> list[Transaction]:
        """Every record, any status, newest date first."""
        return sort_for_history(self._transactions)

    def pending(self) -> list[Transaction]:
        return review_queue(self._transactions)

    def report(
        self,
        report_filter: Optional[ReportFilter] = None,
    ) -> tuple[list[Transaction], LedgerStats]:
        rows = filtered_transactions(self._transactions, report_filter)
        return rows, filtered_stats(rows)
