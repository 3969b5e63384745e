"""
Sales channel reconciliation

Same promotion discipline as bank transactions, applied to two more pairs:
- order -> invoice: link an order to an invoice of the same total dated
  within a week of the order
- fee -> expense: book each channel fee as an expense exactly once

An existing link always means "skip"; links are written with a
conditional update so a concurrent run cannot link twice.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from ..config import config
from ..store.base import RecordStore, StoreError
from ..models import BatchResult, ChannelFee, Expense

logger = logging.getLogger(__name__)

FEE_CATEGORIES = {
    'AMAZON': 'Amazon Fees',
}
DEFAULT_FEE_CATEGORY = 'Platform Fees'


class FeeSyncAborted(Exception):
    pass


def fee_category(channel: str) -> str:
    return FEE_CATEGORIES.get((channel or '').upper(), DEFAULT_FEE_CATEGORY)


def fee_description(fee: ChannelFee) -> str:
    return f"{fee.channel} {fee.fee_type}: {fee.fee_description}"


class ChannelMatcher:
    """
    Links channel orders to invoices and channel fees to expenses
    """

    def __init__(self, store: RecordStore,
                 window_days: Optional[int] = None,
                 tolerance: Optional[Decimal] = None):
        self.store = store
        self.window_days = config.CHANNEL_MATCH_WINDOW_DAYS if window_days is None else window_days
        self.tolerance = config.CHANNEL_AMOUNT_TOLERANCE if tolerance is None else Decimal(tolerance)

    def match_order_to_invoice(self, order_id: int) -> Optional[int]:
        """
        Link an order to the first invoice with the same total

        Returns:
            Linked invoice id, or None (unknown order, already linked,
            no candidate, lost race or store failure)
        """
        try:
            order = self.store.get_order(order_id)
            if order is None:
                return None
            if order.linked_invoice_id is not None:
                logger.info("Order %s already linked to invoice %s", order_id, order.linked_invoice_id)
                return None

            start = order.order_date - timedelta(days=self.window_days)
            end = order.order_date + timedelta(days=self.window_days)
            invoices = self.store.find_invoices(start, end)

            total = Decimal(order.total_amount)
            match = next(
                (inv for inv in invoices if abs(Decimal(inv.total) - total) < self.tolerance),
                None,
            )
            if match is None:
                return None

            if not self.store.link_order_invoice(order_id, match.id, datetime.now().astimezone()):
                logger.info("Order %s was linked by another writer", order_id)
                return None
        except StoreError as e:
            logger.error("Order matching failed for order %s: %s", order_id, e)
            return None

        return match.id

    def sync_fee_to_expense(self, fee_id: int) -> Optional[int]:
        """
        Book one fee as an expense

        Returns:
            New expense id, or None if the fee is missing, already linked,
            or the booking was rolled back
        """
        try:
            with self.store.atomic():
                fee = self.store.get_fee(fee_id, for_update=True)
                if fee is None or fee.linked_expense_id is not None:
                    return None

                expense_id = self.store.insert_expense(Expense(
                    id=None,
                    description=fee_description(fee),
                    category=fee_category(fee.channel),
                    amount=abs(fee.amount),
                    date=fee.date,
                    vendor=fee.channel,
                ))
                if not self.store.link_fee_expense(fee_id, expense_id, datetime.now().astimezone()):
                    raise FeeSyncAborted(f"fee {fee_id} was linked during sync")

        except FeeSyncAborted as e:
            logger.warning("Fee sync rolled back: %s", e)
            return None
        except StoreError as e:
            logger.error("Fee sync failed for fee %s: %s", fee_id, e)
            return None

        return expense_id

    def sync_fees_to_expenses(self, order_id: Optional[int] = None) -> BatchResult:
        """
        Book every unlinked fee (of one order, or of all orders)

        Returns:
            BatchResult (succeeded = expenses created)
        """
        result = BatchResult()

        try:
            fees = self.store.list_fees(order_id)
        except StoreError as e:
            logger.error("Could not load channel fees: %s", e)
            result.add_error(None, f"load failed: {e}")
            return result

        for fee in fees:
            if fee.linked_expense_id is not None:
                continue
            if self.sync_fee_to_expense(fee.id) is not None:
                result.succeeded += 1
            else:
                result.add_error(fee.id, "fee not synced")

        return result
