"""
Record store interface

The reconciliation engine only talks to persistence through this class.
Backends raise StoreError for any failure of the underlying storage.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import ContextManager, List, Optional

from ..models import (
    BankAccount,
    BankTransaction,
    ChannelFee,
    ChannelOrder,
    Expense,
    Invoice,
    TransactionRule,
    TransactionStatus,
)


class StoreError(Exception):
    """Persistence failure (connection lost, constraint violation, ...)"""


class RecordStore:
    """
    Base class for record stores

    Every state change made by the engine goes through a conditional
    update (transition_transaction, link_order_invoice, link_fee_expense)
    that only applies when the row is still in the expected state.
    """

    def atomic(self) -> ContextManager["RecordStore"]:
        """Unit of work: everything inside commits together or not at all"""
        raise NotImplementedError

    # Accounts

    def upsert_account(self, account: BankAccount) -> int:
        """Insert or refresh (balances, last_synced_at) by external account id"""
        raise NotImplementedError

    def get_account_by_external_id(self, external_account_id: str) -> Optional[BankAccount]:
        raise NotImplementedError

    def list_accounts(self, active_only: bool = True) -> List[BankAccount]:
        raise NotImplementedError

    def deactivate_account(self, account_id: int) -> bool:
        raise NotImplementedError

    # Bank transactions

    def insert_transaction(self, transaction: BankTransaction) -> Optional[int]:
        """Insert a feed transaction; None when its external id already exists"""
        raise NotImplementedError

    def get_transaction(self, transaction_id: int, for_update: bool = False) -> Optional[BankTransaction]:
        raise NotImplementedError

    def list_transactions(self,
                          account_id: Optional[int] = None,
                          status: Optional[TransactionStatus] = None) -> List[BankTransaction]:
        """Transactions newest first (date desc, id asc)"""
        raise NotImplementedError

    def update_suggestion(self, transaction_id: int, category: str, confidence: float) -> bool:
        """Write the suggestion only while the row is still pending"""
        raise NotImplementedError

    def transition_transaction(self,
                               transaction_id: int,
                               from_status: TransactionStatus,
                               to_status: TransactionStatus,
                               **fields) -> bool:
        """
        Compare-and-set on status

        Sets status=to_status plus the given fields only if the row's
        current status is from_status. Returns True when a row changed.
        """
        raise NotImplementedError

    # Rules

    def list_rules(self, active_only: bool = True) -> List[TransactionRule]:
        """Rules by descending priority, then id"""
        raise NotImplementedError

    def insert_rule(self, rule: TransactionRule) -> int:
        raise NotImplementedError

    # Expenses

    def insert_expense(self, expense: Expense) -> int:
        raise NotImplementedError

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        raise NotImplementedError

    def find_expenses(self, start: date, end: date, amount: Decimal) -> List[Expense]:
        """Expenses dated within [start, end] whose amount equals amount"""
        raise NotImplementedError

    # Sales channels

    def get_order(self, order_id: int, for_update: bool = False) -> Optional[ChannelOrder]:
        raise NotImplementedError

    def find_invoices(self, start: date, end: date) -> List[Invoice]:
        raise NotImplementedError

    def link_order_invoice(self, order_id: int, invoice_id: int, matched_at: datetime) -> bool:
        """Link only if the order has no invoice yet"""
        raise NotImplementedError

    def list_fees(self, order_id: Optional[int] = None) -> List[ChannelFee]:
        raise NotImplementedError

    def get_fee(self, fee_id: int, for_update: bool = False) -> Optional[ChannelFee]:
        raise NotImplementedError

    def link_fee_expense(self, fee_id: int, expense_id: int, synced_at: datetime) -> bool:
        """Link only if the fee has no expense yet"""
        raise NotImplementedError
