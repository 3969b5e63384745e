"""Tests for Plaid-style feed parsing."""
import json
from datetime import date
from decimal import Decimal

import pytest

from bankfeeds.core.feed_parser import (
    FeedParseError,
    parse_amount,
    parse_date,
    parse_feed_file,
    parse_feed_payload,
)

FEED = {
    'user_id': 'user-1',
    'institution': {'name': 'First Platypus Bank'},
    'accounts': [{
        'account_id': 'acc-checking',
        'name': 'Plaid Checking',
        'type': 'depository',
        'subtype': 'checking',
        'mask': '0000',
        'balances': {'current': 110.0, 'available': 100.0, 'iso_currency_code': 'USD'},
    }],
    'transactions': [{
        'transaction_id': 'txn-uber',
        'account_id': 'acc-checking',
        'date': '2024-03-15',
        'name': 'Uber 063015 SF**POOL**',
        'merchant_name': 'Uber',
        'amount': 5.4,
        'category': ['Travel', 'Taxi'],
        'pending': False,
    }, {
        'transaction_id': 'txn-refund',
        'account_id': 'acc-checking',
        'date': '2024-03-16',
        'name': 'United Airlines refund',
        'amount': -500,
        'category': None,
    }],
}


def test_parse_payload():
    feed = parse_feed_payload(FEED)

    assert feed.user_id == 'user-1'
    account = feed.accounts[0]
    assert account.external_account_id == 'acc-checking'
    assert account.institution_name == 'First Platypus Bank'
    assert account.current_balance == Decimal('110.0')
    assert account.mask == '0000'

    uber, refund = feed.transactions
    assert uber.date == date(2024, 3, 15)
    assert uber.amount == Decimal('5.4')
    assert uber.categories == ['Travel', 'Taxi']
    assert uber.merchant_name == 'Uber'
    assert refund.amount == Decimal('-500')
    assert refund.categories == []
    assert refund.merchant_name is None


def test_amounts_kept_as_reported():
    # sign conversion belongs to ingestion
    feed = parse_feed_payload(FEED)
    assert feed.transactions[0].amount > 0


def test_parse_date_formats():
    assert parse_date('2024-03-15') == date(2024, 3, 15)
    assert parse_date('2024-03-15T10:22:00Z') == date(2024, 3, 15)
    assert parse_date(date(2024, 1, 1)) == date(2024, 1, 1)
    with pytest.raises(FeedParseError):
        parse_date('15/03/2024')
    with pytest.raises(FeedParseError):
        parse_date(None)


def test_parse_amount():
    assert parse_amount('$1,234.50') == Decimal('1234.50')
    assert parse_amount(None) == Decimal('0.00')
    with pytest.raises(FeedParseError):
        parse_amount('twelve')


@pytest.mark.parametrize('field', ['transaction_id', 'account_id', 'amount'])
def test_transaction_missing_required_field(field):
    txn = dict(FEED['transactions'][0])
    del txn[field]

    with pytest.raises(FeedParseError):
        parse_feed_payload({'transactions': [txn]})


def test_malformed_categories_dropped():
    txn = dict(FEED['transactions'][0], category=[None, 7, 'Shops'])
    feed = parse_feed_payload({'transactions': [txn]})
    assert feed.transactions[0].categories == ['Shops']


def test_document_must_be_object():
    with pytest.raises(FeedParseError):
        parse_feed_payload([])


def test_parse_feed_file(tmp_path):
    path = tmp_path / 'feed.json'
    path.write_text(json.dumps(FEED))

    feed = parse_feed_file(path)

    assert len(feed.accounts) == 1
    assert len(feed.transactions) == 2


def test_parse_feed_file_invalid_json(tmp_path):
    path = tmp_path / 'feed.json'
    path.write_text('{"accounts": [')

    with pytest.raises(FeedParseError):
        parse_feed_file(path)
