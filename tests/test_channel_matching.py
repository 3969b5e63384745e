"""Tests for order -> invoice linking and fee -> expense booking."""
from datetime import date, timedelta
from decimal import Decimal

from bankfeeds.core.channel_matching import ChannelMatcher, fee_category, fee_description
from bankfeeds.models import ChannelFee, ChannelOrder, Invoice
from bankfeeds.store.base import StoreError
from bankfeeds.store.memory import InMemoryStore

ORDER_DATE = date(2024, 5, 10)


class FailingExpenseInsertStore(InMemoryStore):
    def insert_expense(self, expense):
        raise StoreError("disk full")


class LinkedElsewhereStore(InMemoryStore):
    """Another writer links the fee between the row lock and the link"""

    def link_fee_expense(self, fee_id, expense_id, synced_at):
        return False


def _order(store, total='129.99', channel='AMAZON', **extra):
    return store.insert_order(ChannelOrder(
        id=None, channel=channel, channel_order_id='112-0000000-0000000',
        order_date=ORDER_DATE, total_amount=Decimal(total), **extra))


def _invoice(store, total='129.99', days_after=0):
    return store.insert_invoice(Invoice(
        id=None, total=Decimal(total), invoice_date=ORDER_DATE + timedelta(days=days_after)))


def _fee(store, order_id, amount='-19.50', channel='AMAZON', fee_type='Commission'):
    return store.insert_fee(ChannelFee(
        id=None, order_id=order_id, channel=channel, fee_type=fee_type,
        fee_description='Referral fee', amount=Decimal(amount), date=ORDER_DATE))


def test_order_linked_to_invoice_with_same_total(store):
    order_id = _order(store)
    _invoice(store, total='50.00')
    invoice_id = _invoice(store, days_after=2)

    assert ChannelMatcher(store).match_order_to_invoice(order_id) == invoice_id

    order = store.get_order(order_id)
    assert order.linked_invoice_id == invoice_id
    assert order.matched_at is not None


def test_invoice_outside_window_not_linked(store):
    order_id = _order(store)
    _invoice(store, days_after=8)
    _invoice(store, days_after=-8)

    assert ChannelMatcher(store).match_order_to_invoice(order_id) is None
    assert store.get_order(order_id).linked_invoice_id is None


def test_invoice_at_window_edge_is_linked(store):
    order_id = _order(store)
    invoice_id = _invoice(store, days_after=-7)

    assert ChannelMatcher(store).match_order_to_invoice(order_id) == invoice_id


def test_amount_tolerance_is_strict(store):
    order_id = _order(store, total='100.00')
    _invoice(store, total='100.01')

    assert ChannelMatcher(store).match_order_to_invoice(order_id) is None

    invoice_id = _invoice(store, total='100.005')
    assert ChannelMatcher(store).match_order_to_invoice(order_id) == invoice_id


def test_linked_order_is_skipped(store):
    first = _invoice(store)
    order_id = _order(store, linked_invoice_id=first)
    _invoice(store)

    assert ChannelMatcher(store).match_order_to_invoice(order_id) is None
    assert store.get_order(order_id).linked_invoice_id == first


def test_unknown_order(store):
    assert ChannelMatcher(store).match_order_to_invoice(404) is None


def test_fee_category_by_channel():
    assert fee_category('AMAZON') == 'Amazon Fees'
    assert fee_category('amazon') == 'Amazon Fees'
    assert fee_category('SHOPIFY') == 'Platform Fees'
    assert fee_category(None) == 'Platform Fees'


def test_fee_synced_to_expense_once(store):
    order_id = _order(store)
    fee_id = _fee(store, order_id)
    matcher = ChannelMatcher(store)

    expense_id = matcher.sync_fee_to_expense(fee_id)

    expense = store.get_expense(expense_id)
    assert expense.amount == Decimal('19.50')
    assert expense.category == 'Amazon Fees'
    assert expense.description == 'AMAZON Commission: Referral fee'
    assert expense.vendor == 'AMAZON'
    assert store.get_fee(fee_id).linked_expense_id == expense_id

    assert matcher.sync_fee_to_expense(fee_id) is None
    assert len(store.list_expenses()) == 1


def test_sync_fees_batch_skips_linked_and_filters_by_order(store):
    order_a = _order(store)
    order_b = _order(store, channel='SHOPIFY')
    _fee(store, order_a)
    _fee(store, order_a, fee_type='FBA')
    shopify_fee = _fee(store, order_b, channel='SHOPIFY', fee_type='Payment')
    matcher = ChannelMatcher(store)

    assert matcher.sync_fees_to_expenses(order_a).succeeded == 2
    assert store.get_fee(shopify_fee).linked_expense_id is None

    result = matcher.sync_fees_to_expenses()
    assert result.succeeded == 1
    assert {e.category for e in store.list_expenses()} == {'Amazon Fees', 'Platform Fees'}

    assert matcher.sync_fees_to_expenses().succeeded == 0


def test_fee_insert_failure_reported_per_item():
    store = FailingExpenseInsertStore()
    order_id = _order(store)
    fee_id = _fee(store, order_id)

    result = ChannelMatcher(store).sync_fees_to_expenses()

    assert result.succeeded == 0
    assert result.errors[0].item_id == fee_id
    assert store.get_fee(fee_id).linked_expense_id is None


def test_sync_fee_returns_none_when_link_lost_and_rolls_back_expense():
    store = LinkedElsewhereStore()
    fee_id = _fee(store, _order(store))

    assert ChannelMatcher(store).sync_fee_to_expense(fee_id) is None
    assert store.list_expenses() == []


def test_sync_fee_returns_none_when_expense_insert_fails():
    store = FailingExpenseInsertStore()
    fee_id = _fee(store, _order(store))

    assert ChannelMatcher(store).sync_fee_to_expense(fee_id) is None
    assert store.get_fee(fee_id).linked_expense_id is None


def test_lost_fee_link_reported_per_item():
    store = LinkedElsewhereStore()
    fee_id = _fee(store, _order(store))

    result = ChannelMatcher(store).sync_fees_to_expenses()

    assert result.succeeded == 0
    assert [(e.item_id, e.message) for e in result.errors] == [(fee_id, "fee not synced")]
    assert store.list_expenses() == []


def test_fee_description_format():
    fee = ChannelFee(id=1, order_id=1, channel='ETSY', fee_type='Listing',
                     fee_description='Listing fee', amount=Decimal('-0.20'), date=ORDER_DATE)
    assert fee_description(fee) == 'ETSY Listing: Listing fee'
