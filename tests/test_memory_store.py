"""
Tests for the in-memory store, its subscriptions, and the reactive
ledger state built on top of it.
"""

import asyncio
from decimal import Decimal

import pytest

from cashbook.ledger import LedgerState
from cashbook.models import MasterSetField, ReportFilter, TransactionStatus, TransactionType
from cashbook.services.storage import (
    ConflictError,
    InMemoryDocumentStore,
    NotFoundError,
    PersistenceError,
)


class TestTransactions:

    def test_create_assigns_id(self, store, make_transaction):
        stored = asyncio.run(store.create_transaction(make_transaction()))
        assert stored.id
        assert asyncio.run(store.get_transaction(stored.id)) == stored

    def test_create_refuses_records_with_id(self, store, make_transaction):
        with pytest.raises(PersistenceError):
            asyncio.run(store.create_transaction(make_transaction(id="chosen-by-client")))

    def test_list_keeps_insertion_order(self, store, make_transaction):
        first = asyncio.run(store.create_transaction(make_transaction(description="Pertama")))
        second = asyncio.run(store.create_transaction(make_transaction(description="Kedua")))
        assert [tx.id for tx in asyncio.run(store.list_transactions())] == [first.id, second.id]

    def test_status_update(self, store, make_transaction):
        tx = asyncio.run(store.create_transaction(
            make_transaction(status=TransactionStatus.PENDING)
        ))
        updated = asyncio.run(store.update_transaction_status(
            tx.id, TransactionStatus.APPROVED, expected_status=TransactionStatus.PENDING
        ))
        assert updated.status == TransactionStatus.APPROVED

    def test_status_update_compare_and_set(self, store, make_transaction):
        tx = asyncio.run(store.create_transaction(make_transaction()))
        with pytest.raises(ConflictError):
            asyncio.run(store.update_transaction_status(
                tx.id, TransactionStatus.REJECTED, expected_status=TransactionStatus.PENDING
            ))

    def test_status_update_unknown_record(self, store):
        with pytest.raises(NotFoundError):
            asyncio.run(store.update_transaction_status("nope", TransactionStatus.APPROVED))


class TestSubscriptions:

    def test_collection_snapshot_on_subscribe_and_change(self, store, make_transaction):
        snapshots = []
        asyncio.run(store.subscribe_collection(snapshots.append))
        asyncio.run(store.create_transaction(make_transaction()))

        assert len(snapshots) == 2
        assert snapshots[0] == ()
        assert len(snapshots[1]) == 1
        assert isinstance(snapshots[1], tuple)

    def test_unsubscribe_stops_delivery(self, store, make_transaction):
        snapshots = []
        unsubscribe = asyncio.run(store.subscribe_collection(snapshots.append))
        unsubscribe()
        asyncio.run(store.create_transaction(make_transaction()))
        assert len(snapshots) == 1

    def test_document_is_not_delivered_before_it_exists(self, master):
        store = InMemoryDocumentStore()
        received = []
        asyncio.run(store.subscribe_document(received.append))
        assert received == []

        asyncio.run(store.create_if_absent(master))
        assert received == [master]

    def test_create_if_absent_only_once(self, store, master):
        assert asyncio.run(store.document_exists())
        assert asyncio.run(store.create_if_absent(master)) is False

    def test_broken_listener_does_not_fail_the_write(self, store, make_transaction):
        def broken(snapshot):
            raise RuntimeError("listener bug")

        asyncio.run(store.subscribe_collection(broken))
        stored = asyncio.run(store.create_transaction(make_transaction()))
        assert stored.id


class TestLedgerState:

    @pytest.fixture
    def state(self, store) -> LedgerState:
        state = LedgerState(store)
        asyncio.run(state.start())
        return state

    def test_start_delivers_both_snapshots(self, state, master):
        assert state.started
        assert state.snapshot() == ()
        assert state.master == master

    def test_stats_follow_approvals(self, state, store, make_transaction):
        changes = []
        state.on_change(lambda s: changes.append(s.stats.balance))

        tx = asyncio.run(store.create_transaction(
            make_transaction(status=TransactionStatus.PENDING)
        ))
        assert state.stats.balance == Decimal("0")
        assert state.pending() == [tx]

        asyncio.run(store.update_transaction_status(tx.id, TransactionStatus.APPROVED))
        assert state.stats.balance == Decimal("50000")
        assert state.pending() == []
        assert changes == [Decimal("0"), Decimal("50000")]

    def test_report_and_history(self, state, store, make_transaction):
        asyncio.run(store.create_transaction(make_transaction(member="Ayah")))
        asyncio.run(store.create_transaction(make_transaction(
            member="Ibu", type=TransactionType.EXPENSE, amount=Decimal("20000")
        )))
        asyncio.run(store.create_transaction(make_transaction(status=TransactionStatus.REJECTED)))

        rows, stats = state.report(ReportFilter(member="Ibu"))
        assert len(rows) == 1
        assert stats.balance == Decimal("-20000")
        assert len(state.history()) == 3

    def test_master_changes_are_picked_up(self, state, store):
        asyncio.run(store.add_to_config_set(MasterSetField.CATEGORIES, "Liburan"))
        assert "Liburan" in state.master.categories

    def test_close_unsubscribes(self, state, store, make_transaction):
        state.close()
        asyncio.run(store.create_transaction(make_transaction()))
        assert state.snapshot() == ()
        assert not state.started
