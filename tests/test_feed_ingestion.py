"""Tests for idempotent feed ingestion and the sign convention."""
from datetime import date
from decimal import Decimal

from bankfeeds.core.feed_ingestion import FeedIngestor, to_internal_amount
from bankfeeds.core.feed_parser import FeedAccount, FeedPayload, FeedTransaction
from bankfeeds.models import TransactionStatus


def _feed(*transactions, balance='110.00'):
    return FeedPayload(
        accounts=[FeedAccount(
            external_account_id='acc-checking',
            account_name='Plaid Checking',
            institution_name='First Platypus Bank',
            current_balance=Decimal(balance),
        )],
        transactions=list(transactions),
        user_id='user-1',
    )


def _feed_txn(external_id='txn-1', amount='45.00', account='acc-checking', **extra):
    return FeedTransaction(
        external_id=external_id,
        external_account_id=account,
        date=date(2024, 3, 15),
        name='SHELL OIL 123',
        amount=Decimal(amount),
        **extra,
    )


def test_to_internal_amount():
    assert to_internal_amount(Decimal('45.00'), positive_outflow=True) == Decimal('-45.00')
    assert to_internal_amount(Decimal('-500'), positive_outflow=True) == Decimal('500')
    assert to_internal_amount(Decimal('45.00'), positive_outflow=False) == Decimal('45.00')


def test_ingest_creates_account_and_pending_transactions(store):
    result = FeedIngestor(store).ingest(_feed(
        _feed_txn('t1', categories=['Travel', 'Gas Stations']),
        _feed_txn('t2', amount='-1200.00'),
    ))

    assert result.accounts == 1
    assert result.inserted == 2
    assert result.errors == []

    account = store.get_account_by_external_id('acc-checking')
    assert account.user_id == 'user-1'
    assert account.last_synced_at is not None

    outflow, inflow = (store.get_transaction(i) for i in result.inserted_ids)
    assert outflow.amount == Decimal('-45.00')
    assert inflow.amount == Decimal('1200.00')
    assert outflow.status is TransactionStatus.PENDING
    assert outflow.provider_categories == ['Travel', 'Gas Stations']
    assert outflow.bank_account_id == account.id


def test_replaying_feed_is_a_no_op(store):
    feed = _feed(_feed_txn('t1'), _feed_txn('t2'))
    ingestor = FeedIngestor(store)

    ingestor.ingest(feed)
    replay = ingestor.ingest(feed)

    assert replay.inserted == 0
    assert replay.duplicates == 2
    assert len(store.list_transactions()) == 2
    assert len(store.list_accounts()) == 1


def test_replay_keeps_review_state(store):
    ingestor = FeedIngestor(store)
    first = ingestor.ingest(_feed(_feed_txn('t1')))
    txn_id = first.inserted_ids[0]
    store.transition_transaction(txn_id, TransactionStatus.PENDING, TransactionStatus.REJECTED,
                                 reviewed_by='alice')

    ingestor.ingest(_feed(_feed_txn('t1')))

    assert store.get_transaction(txn_id).status is TransactionStatus.REJECTED


def test_account_balances_refreshed(store):
    ingestor = FeedIngestor(store)
    ingestor.ingest(_feed(balance='110.00'))
    ingestor.ingest(_feed(balance='64.10'))

    assert store.get_account_by_external_id('acc-checking').current_balance == Decimal('64.10')


def test_unknown_account_reported_as_error(store):
    result = FeedIngestor(store).ingest(_feed(_feed_txn('t1', account='acc-savings')))

    assert result.inserted == 0
    assert len(result.errors) == 1
    assert 'acc-savings' in result.errors[0].message


def test_inactive_account_is_not_ingested(store):
    ingestor = FeedIngestor(store)
    ingestor.ingest(_feed())
    account = store.get_account_by_external_id('acc-checking')

    assert ingestor.deactivate_account(account.id) is True
    result = ingestor.ingest(_feed(_feed_txn('t1')))

    assert result.inserted == 0
    assert len(result.errors) == 1
    assert store.list_transactions() == []
    # accounts are kept, only hidden from the active list
    assert store.list_accounts(active_only=True) == []
    assert len(store.list_accounts(active_only=False)) == 1


def test_feed_convention_configurable(store):
    result = FeedIngestor(store, positive_outflow=False).ingest(_feed(_feed_txn('t1', amount='-45.00')))

    assert store.get_transaction(result.inserted_ids[0]).amount == Decimal('-45.00')
