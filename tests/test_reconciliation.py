"""Tests for the transaction lifecycle: pending -> approved -> synced, pending -> rejected."""
import threading
from decimal import Decimal

import pytest

from bankfeeds.core.reconciliation import ReconciliationStateMachine, can_transition
from bankfeeds.models import BankAccount, TransactionStatus
from bankfeeds.store.base import StoreError
from bankfeeds.store.memory import InMemoryStore

from tests.factories import make_transaction

PENDING = TransactionStatus.PENDING
APPROVED = TransactionStatus.APPROVED
REJECTED = TransactionStatus.REJECTED
SYNCED = TransactionStatus.SYNCED


class FailingExpenseInsertStore(InMemoryStore):
    def insert_expense(self, expense):
        raise StoreError("expenses table is read-only")


class LostRaceStore(InMemoryStore):
    """Another writer moves the row between the locked read and the status update"""

    def transition_transaction(self, transaction_id, from_status, to_status, **fields):
        if to_status is TransactionStatus.SYNCED:
            return False
        return super().transition_transaction(transaction_id, from_status, to_status, **fields)


def _set_status(store, txn_id, status):
    """Force a transaction into a state for table-driven tests"""
    txn = store._tables['transactions'][txn_id]
    txn.status = status
    if status in (APPROVED, SYNCED):
        txn.approved_category = 'Meals'
    if status is SYNCED:
        txn.linked_expense_id = 999


@pytest.mark.parametrize('source, target, allowed', [
    (PENDING, APPROVED, True),
    (PENDING, REJECTED, True),
    (PENDING, SYNCED, False),
    (APPROVED, SYNCED, True),
    (APPROVED, PENDING, False),
    (APPROVED, REJECTED, False),
    (REJECTED, PENDING, False),
    (REJECTED, APPROVED, False),
    (SYNCED, APPROVED, False),
    (SYNCED, PENDING, False),
])
def test_allowed_transitions(source, target, allowed):
    assert can_transition(source, target) is allowed


@pytest.mark.parametrize('status, approved', [
    (PENDING, True),
    (APPROVED, False),
    (REJECTED, False),
    (SYNCED, False),
])
def test_approve_only_from_pending(store, add_transaction, status, approved):
    txn_id = add_transaction()
    _set_status(store, txn_id, status)

    assert ReconciliationStateMachine(store).approve(txn_id, 'Auto & Transport', 'alice') is approved
    if not approved:
        assert store.get_transaction(txn_id).status is status


@pytest.mark.parametrize('status, rejected', [
    (PENDING, True),
    (APPROVED, False),
    (REJECTED, False),
    (SYNCED, False),
])
def test_reject_only_from_pending(store, add_transaction, status, rejected):
    txn_id = add_transaction()
    _set_status(store, txn_id, status)

    assert ReconciliationStateMachine(store).reject(txn_id, 'alice') is rejected


@pytest.mark.parametrize('status', [PENDING, REJECTED, SYNCED])
def test_sync_requires_approved(store, add_transaction, status):
    txn_id = add_transaction()
    _set_status(store, txn_id, status)

    assert ReconciliationStateMachine(store).sync(txn_id) is None
    assert store.list_expenses() == []
    assert store.get_transaction(txn_id).status is status


def test_approve_records_reviewer(store, add_transaction):
    txn_id = add_transaction()

    ReconciliationStateMachine(store).approve(txn_id, 'Auto & Transport', 'alice')

    txn = store.get_transaction(txn_id)
    assert txn.status is APPROVED
    assert txn.approved_category == 'Auto & Transport'
    assert txn.reviewed_by == 'alice'
    assert txn.reviewed_at is not None


def test_approve_without_category_is_refused(store, add_transaction):
    txn_id = add_transaction()

    assert ReconciliationStateMachine(store).approve(txn_id, '', 'alice') is False
    assert store.get_transaction(txn_id).status is PENDING


def test_unknown_transaction_is_a_no_op(store):
    machine = ReconciliationStateMachine(store)

    assert machine.approve(404, 'Meals', 'alice') is False
    assert machine.reject(404, 'alice') is False
    assert machine.sync(404) is None


def test_approve_then_sync_creates_one_expense(store, add_transaction):
    txn_id = add_transaction(name='SHELL OIL 123', amount='-45.00')
    machine = ReconciliationStateMachine(store)

    machine.approve(txn_id, 'Auto & Transport', 'alice')
    expense_id = machine.sync(txn_id)

    assert expense_id is not None
    expense = store.get_expense(expense_id)
    assert expense.amount == Decimal('45.00')
    assert expense.category == 'Auto & Transport'
    assert expense.description == 'SHELL OIL 123'
    assert expense.payment_method == 'Bank Account'

    txn = store.get_transaction(txn_id)
    assert txn.status is SYNCED
    assert txn.linked_expense_id == expense_id

    # second sync is a no-op
    assert machine.sync(txn_id) is None
    assert len(store.list_expenses()) == 1


def test_approve_as_office_supplies_then_sync(store, add_transaction):
    txn_id = add_transaction(name='STAPLES 0042', amount='-63.18')
    machine = ReconciliationStateMachine(store)

    assert machine.approve(txn_id, 'Office Supplies', 'alice') is True
    expense_id = machine.sync(txn_id)

    assert store.list_expenses() == [store.get_expense(expense_id)]
    expense = store.get_expense(expense_id)
    assert expense.category == 'Office Supplies'
    assert expense.amount == Decimal('63.18')
    assert store.get_transaction(txn_id).linked_expense_id == expense_id


def test_rejected_is_terminal(store, add_transaction):
    txn_id = add_transaction()
    machine = ReconciliationStateMachine(store)

    machine.reject(txn_id, 'alice')

    assert machine.approve(txn_id, 'Meals', 'bob') is False
    assert machine.sync(txn_id) is None
    assert store.get_transaction(txn_id).status is REJECTED


def test_failed_expense_insert_leaves_transaction_approved():
    store = FailingExpenseInsertStore()
    account = store.upsert_account(BankAccount(
        id=None, external_account_id='acc', institution_name='Bank', account_name='Checking'))
    txn_id = store.insert_transaction(make_transaction(account))
    machine = ReconciliationStateMachine(store)
    machine.approve(txn_id, 'Meals', 'alice')

    assert machine.sync(txn_id) is None

    txn = store.get_transaction(txn_id)
    assert txn.status is APPROVED
    assert txn.linked_expense_id is None
    assert store.list_expenses() == []


def test_concurrent_syncs_create_exactly_one_expense(store, add_transaction):
    txn_id = add_transaction()
    machine = ReconciliationStateMachine(store)
    machine.approve(txn_id, 'Meals', 'alice')

    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(machine.sync(txn_id))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    created = [r for r in results if r is not None]
    assert len(created) == 1
    assert len(store.list_expenses()) == 1
    assert store.get_transaction(txn_id).linked_expense_id == created[0]


def test_lost_status_race_rolls_back_expense():
    store = LostRaceStore()
    account = store.upsert_account(BankAccount(
        id=None, external_account_id='acc', institution_name='Bank', account_name='Checking'))
    txn_id = store.insert_transaction(make_transaction(account))
    machine = ReconciliationStateMachine(store)
    machine.approve(txn_id, 'Meals', 'alice')

    assert machine.sync(txn_id) is None
    assert store.list_expenses() == []
    assert store.get_transaction(txn_id).status is APPROVED
