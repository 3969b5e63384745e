"""
In-memory record store

Thread-safe store used for dry runs and tests. A single re-entrant lock
serializes access; atomic() holds the lock for the whole unit of work and
restores a snapshot if the block raises.
"""
import copy
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

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
from .base import RecordStore, StoreError


class InMemoryStore(RecordStore):
    """Dict-backed RecordStore; returns copies so callers never alias stored rows"""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._tables: Dict[str, Dict[int, object]] = {
            'accounts': {},
            'transactions': {},
            'rules': {},
            'expenses': {},
            'invoices': {},
            'orders': {},
            'fees': {},
        }
        self._next_id = 1

    def _new_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def _insert(self, table: str, row) -> int:
        with self._lock:
            row_id = row.id if row.id is not None else self._new_id()
            self._next_id = max(self._next_id, row_id + 1)
            self._tables[table][row_id] = copy.deepcopy(replace(row, id=row_id))
            return row_id

    def _get(self, table: str, row_id: int):
        with self._lock:
            row = self._tables[table].get(row_id)
            return copy.deepcopy(row)

    def _all(self, table: str) -> List:
        with self._lock:
            return [copy.deepcopy(r) for r in self._tables[table].values()]

    @contextmanager
    def atomic(self) -> Iterator['InMemoryStore']:
        with self._lock:
            snapshot = None
            if self._depth == 0:
                snapshot = (copy.deepcopy(self._tables), self._next_id)
            self._depth += 1
            try:
                yield self
            except BaseException:
                if snapshot is not None:
                    self._tables, self._next_id = snapshot
                raise
            finally:
                self._depth -= 1

    # Accounts

    def upsert_account(self, account: BankAccount) -> int:
        with self._lock:
            existing = self.get_account_by_external_id(account.external_account_id)
            if existing is None:
                return self._insert('accounts', account)

            stored = self._tables['accounts'][existing.id]
            stored.current_balance = account.current_balance
            stored.available_balance = account.available_balance
            stored.last_synced_at = account.last_synced_at
            return existing.id

    def get_account_by_external_id(self, external_account_id: str) -> Optional[BankAccount]:
        with self._lock:
            for account in self._tables['accounts'].values():
                if account.external_account_id == external_account_id:
                    return copy.deepcopy(account)
            return None

    def list_accounts(self, active_only: bool = True) -> List[BankAccount]:
        accounts = self._all('accounts')
        if active_only:
            accounts = [a for a in accounts if a.is_active]
        return sorted(accounts, key=lambda a: (a.institution_name, a.id))

    def deactivate_account(self, account_id: int) -> bool:
        with self._lock:
            account = self._tables['accounts'].get(account_id)
            if account is None:
                return False
            account.is_active = False
            return True

    # Bank transactions

    def insert_transaction(self, transaction: BankTransaction) -> Optional[int]:
        with self._lock:
            if transaction.bank_account_id not in self._tables['accounts']:
                raise StoreError(f"Unknown bank account {transaction.bank_account_id}")
            for existing in self._tables['transactions'].values():
                if existing.external_id == transaction.external_id:
                    return None
            return self._insert('transactions', transaction)

    def get_transaction(self, transaction_id: int, for_update: bool = False) -> Optional[BankTransaction]:
        return self._get('transactions', transaction_id)

    def list_transactions(self,
                          account_id: Optional[int] = None,
                          status: Optional[TransactionStatus] = None) -> List[BankTransaction]:
        rows = self._all('transactions')
        if account_id is not None:
            rows = [t for t in rows if t.bank_account_id == account_id]
        if status is not None:
            rows = [t for t in rows if t.status == status]
        rows.sort(key=lambda t: t.id)
        rows.sort(key=lambda t: t.date, reverse=True)
        return rows

    def update_suggestion(self, transaction_id: int, category: str, confidence: float) -> bool:
        with self._lock:
            txn = self._tables['transactions'].get(transaction_id)
            if txn is None or txn.status != TransactionStatus.PENDING:
                return False
            txn.suggested_category = category
            txn.confidence_score = confidence
            txn.updated_at = datetime.now().astimezone()
            return True

    def transition_transaction(self,
                               transaction_id: int,
                               from_status: TransactionStatus,
                               to_status: TransactionStatus,
                               **fields) -> bool:
        with self._lock:
            txn = self._tables['transactions'].get(transaction_id)
            if txn is None or txn.status != from_status:
                return False
            for name in fields:
                if not hasattr(txn, name):
                    raise StoreError(f"Unknown bank transaction field: {name}")
            for name, value in fields.items():
                setattr(txn, name, value)
            txn.status = to_status
            txn.updated_at = datetime.now().astimezone()
            return True

    # Rules

    def list_rules(self, active_only: bool = True) -> List[TransactionRule]:
        rules = self._all('rules')
        if active_only:
            rules = [r for r in rules if r.is_active]
        return sorted(rules, key=lambda r: (-r.priority, r.id))

    def insert_rule(self, rule: TransactionRule) -> int:
        return self._insert('rules', rule)

    # Expenses

    def insert_expense(self, expense: Expense) -> int:
        if expense.created_at is None:
            expense = replace(expense, created_at=datetime.now().astimezone())
        return self._insert('expenses', expense)

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        return self._get('expenses', expense_id)

    def find_expenses(self, start: date, end: date, amount: Decimal) -> List[Expense]:
        return [
            e for e in self._all('expenses')
            if start <= e.date <= end and Decimal(e.amount) == Decimal(amount)
        ]

    def list_expenses(self) -> List[Expense]:
        return self._all('expenses')

    # Sales channels

    def insert_invoice(self, invoice: Invoice) -> int:
        return self._insert('invoices', invoice)

    def insert_order(self, order: ChannelOrder) -> int:
        return self._insert('orders', order)

    def insert_fee(self, fee: ChannelFee) -> int:
        return self._insert('fees', fee)

    def get_order(self, order_id: int, for_update: bool = False) -> Optional[ChannelOrder]:
        return self._get('orders', order_id)

    def find_invoices(self, start: date, end: date) -> List[Invoice]:
        invoices = [i for i in self._all('invoices') if start <= i.invoice_date <= end]
        return sorted(invoices, key=lambda i: (i.invoice_date, i.id))

    def link_order_invoice(self, order_id: int, invoice_id: int, matched_at: datetime) -> bool:
        with self._lock:
            order = self._tables['orders'].get(order_id)
            if order is None or order.linked_invoice_id is not None:
                return False
            order.linked_invoice_id = invoice_id
            order.matched_at = matched_at
            return True

    def list_fees(self, order_id: Optional[int] = None) -> List[ChannelFee]:
        fees = self._all('fees')
        if order_id is not None:
            fees = [f for f in fees if f.order_id == order_id]
        fees.sort(key=lambda f: f.id)
        fees.sort(key=lambda f: f.date, reverse=True)
        return fees

    def get_fee(self, fee_id: int, for_update: bool = False) -> Optional[ChannelFee]:
        return self._get('fees', fee_id)

    def link_fee_expense(self, fee_id: int, expense_id: int, synced_at: datetime) -> bool:
        with self._lock:
            fee = self._tables['fees'].get(fee_id)
            if fee is None or fee.linked_expense_id is not None:
                return False
            fee.linked_expense_id = expense_id
            fee.synced_at = synced_at
            return True
