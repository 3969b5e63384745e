"""
PostgreSQL record store (psycopg2)

Every status change is a conditional UPDATE ... WHERE status = %s so that
concurrent writers can never move a row backwards or promote it twice.
Outside atomic() each statement commits immediately; inside atomic() the
whole block commits or rolls back together.
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from ..models import (
    BankAccount,
    BankTransaction,
    ChannelFee,
    ChannelOrder,
    Expense,
    Invoice,
    MatchType,
    TransactionRule,
    TransactionStatus,
)
from .base import RecordStore, StoreError

logger = logging.getLogger(__name__)

# Columns a status transition may set alongside the status itself
TRANSITION_FIELDS = {
    'approved_category',
    'linked_expense_id',
    'reviewed_by',
    'reviewed_at',
    'notes',
}

TRANSACTION_COLUMNS = """
    id, bank_account_id, external_id, date, name, merchant_name, amount,
    provider_categories, pending, suggested_category, confidence_score,
    status, approved_category, linked_expense_id, reviewed_by, reviewed_at,
    notes, created_at, updated_at
"""


def _row_to_account(row: Dict) -> BankAccount:
    return BankAccount(
        id=row['id'],
        user_id=row['user_id'],
        external_account_id=row['external_account_id'],
        institution_name=row['institution_name'],
        account_name=row['account_name'],
        account_type=row['account_type'],
        account_subtype=row['account_subtype'],
        mask=row['mask'],
        current_balance=row['current_balance'],
        available_balance=row['available_balance'],
        currency_code=row['currency_code'],
        is_active=row['is_active'],
        last_synced_at=row['last_synced_at'],
    )


def _row_to_transaction(row: Dict) -> BankTransaction:
    return BankTransaction(
        id=row['id'],
        bank_account_id=row['bank_account_id'],
        external_id=row['external_id'],
        date=row['date'],
        name=row['name'],
        merchant_name=row['merchant_name'],
        amount=row['amount'],
        provider_categories=list(row['provider_categories'] or []),
        pending=row['pending'],
        suggested_category=row['suggested_category'],
        confidence_score=float(row['confidence_score']) if row['confidence_score'] is not None else None,
        status=TransactionStatus(row['status']),
        approved_category=row['approved_category'],
        linked_expense_id=row['linked_expense_id'],
        reviewed_by=row['reviewed_by'],
        reviewed_at=row['reviewed_at'],
        notes=row['notes'],
        created_at=row['created_at'],
        updated_at=row['updated_at'],
    )


def _row_to_rule(row: Dict) -> TransactionRule:
    return TransactionRule(
        id=row['id'],
        rule_name=row['rule_name'],
        merchant_pattern=row['merchant_pattern'],
        match_type=row['match_type'],
        category=row['category'],
        auto_approve=row['auto_approve'],
        priority=row['priority'],
        is_active=row['is_active'],
    )


def _row_to_expense(row: Dict) -> Expense:
    return Expense(
        id=row['id'],
        description=row['description'],
        category=row['category'],
        amount=row['amount'],
        date=row['date'],
        vendor=row['vendor'],
        payment_method=row['payment_method'],
        created_at=row['created_at'],
    )


def _row_to_order(row: Dict) -> ChannelOrder:
    return ChannelOrder(
        id=row['id'],
        channel=row['channel'],
        channel_order_id=row['channel_order_id'],
        order_date=row['order_date'],
        total_amount=row['total_amount'],
        customer_name=row['customer_name'],
        status=row['status'],
        linked_invoice_id=row['linked_invoice_id'],
        matched_at=row['matched_at'],
    )


def _row_to_fee(row: Dict) -> ChannelFee:
    return ChannelFee(
        id=row['id'],
        order_id=row['order_id'],
        channel=row['channel'],
        fee_type=row['fee_type'],
        fee_description=row['fee_description'],
        amount=row['amount'],
        date=row['date'],
        linked_expense_id=row['linked_expense_id'],
        synced_at=row['synced_at'],
    )


class PostgresStore(RecordStore):
    """RecordStore over a psycopg2 connection"""

    def __init__(self, conn):
        self.conn = conn
        self._depth = 0

    def _execute(self, query: str, params=(), fetch: Optional[str] = None):
        """
        Run one statement

        Args:
            query: SQL with %s placeholders
            params: Query parameters
            fetch: 'one', 'all' or None (return rowcount)
        """
        try:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(query, params)
                if fetch == 'one':
                    result = cursor.fetchone()
                elif fetch == 'all':
                    result = cursor.fetchall()
                else:
                    result = cursor.rowcount
            if self._depth == 0:
                self.conn.commit()
            return result
        except psycopg2.Error as e:
            if self._depth == 0:
                self.conn.rollback()
            raise StoreError(str(e)) from e

    @contextmanager
    def atomic(self) -> Iterator['PostgresStore']:
        if self._depth > 0:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self.conn.commit()
        except psycopg2.Error as e:
            self.conn.rollback()
            logger.warning("Rolled back unit of work: %s", e)
            raise StoreError(str(e)) from e
        except BaseException:
            self.conn.rollback()
            raise
        finally:
            self._depth = 0

    # Accounts

    def upsert_account(self, account: BankAccount) -> int:
        row = self._execute("""
            INSERT INTO bank_accounts (
                user_id, external_account_id, institution_name, account_name,
                account_type, account_subtype, mask,
                current_balance, available_balance, currency_code,
                is_active, last_synced_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (external_account_id) DO UPDATE
            SET current_balance = EXCLUDED.current_balance,
                available_balance = EXCLUDED.available_balance,
                last_synced_at = EXCLUDED.last_synced_at
            RETURNING id
        """, (
            account.user_id, account.external_account_id, account.institution_name,
            account.account_name, account.account_type, account.account_subtype,
            account.mask, account.current_balance, account.available_balance,
            account.currency_code, account.is_active, account.last_synced_at,
        ), fetch='one')
        return row['id']

    def get_account_by_external_id(self, external_account_id: str) -> Optional[BankAccount]:
        row = self._execute(
            "SELECT * FROM bank_accounts WHERE external_account_id = %s",
            (external_account_id,), fetch='one')
        return _row_to_account(row) if row else None

    def list_accounts(self, active_only: bool = True) -> List[BankAccount]:
        query = "SELECT * FROM bank_accounts"
        if active_only:
            query += " WHERE is_active = TRUE"
        query += " ORDER BY institution_name, id"
        return [_row_to_account(r) for r in self._execute(query, fetch='all')]

    def deactivate_account(self, account_id: int) -> bool:
        count = self._execute(
            "UPDATE bank_accounts SET is_active = FALSE WHERE id = %s", (account_id,))
        return count == 1

    # Bank transactions

    def insert_transaction(self, transaction: BankTransaction) -> Optional[int]:
        row = self._execute("""
            INSERT INTO bank_transactions (
                bank_account_id, external_id, date, name, merchant_name,
                amount, provider_categories, pending, status
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (external_id) DO NOTHING
            RETURNING id
        """, (
            transaction.bank_account_id, transaction.external_id, transaction.date,
            transaction.name, transaction.merchant_name, transaction.amount,
            list(transaction.provider_categories or []), transaction.pending,
            TransactionStatus(transaction.status).value,
        ), fetch='one')
        return row['id'] if row else None

    def get_transaction(self, transaction_id: int, for_update: bool = False) -> Optional[BankTransaction]:
        query = f"SELECT {TRANSACTION_COLUMNS} FROM bank_transactions WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        row = self._execute(query, (transaction_id,), fetch='one')
        return _row_to_transaction(row) if row else None

    def list_transactions(self,
                          account_id: Optional[int] = None,
                          status: Optional[TransactionStatus] = None) -> List[BankTransaction]:
        conditions = []
        params = []
        if account_id is not None:
            conditions.append("bank_account_id = %s")
            params.append(account_id)
        if status is not None:
            conditions.append("status = %s")
            params.append(TransactionStatus(status).value)

        query = f"SELECT {TRANSACTION_COLUMNS} FROM bank_transactions"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY date DESC, id"

        return [_row_to_transaction(r) for r in self._execute(query, tuple(params), fetch='all')]

    def update_suggestion(self, transaction_id: int, category: str, confidence: float) -> bool:
        count = self._execute("""
            UPDATE bank_transactions
            SET suggested_category = %s,
                confidence_score = %s,
                updated_at = NOW()
            WHERE id = %s AND status = %s
        """, (category, confidence, transaction_id, TransactionStatus.PENDING.value))
        return count == 1

    def transition_transaction(self,
                               transaction_id: int,
                               from_status: TransactionStatus,
                               to_status: TransactionStatus,
                               **fields) -> bool:
        unknown = set(fields) - TRANSITION_FIELDS
        if unknown:
            raise StoreError(f"Cannot set bank transaction fields: {sorted(unknown)}")

        assignments = ["status = %s"]
        params = [TransactionStatus(to_status).value]
        for name in sorted(fields):
            assignments.append(f"{name} = %s")
            params.append(fields[name])
        assignments.append("updated_at = NOW()")
        params.extend([transaction_id, TransactionStatus(from_status).value])

        count = self._execute(f"""
            UPDATE bank_transactions
            SET {', '.join(assignments)}
            WHERE id = %s AND status = %s
        """, tuple(params))
        return count == 1

    # Rules

    def list_rules(self, active_only: bool = True) -> List[TransactionRule]:
        query = "SELECT * FROM transaction_rules"
        if active_only:
            query += " WHERE is_active = TRUE"
        query += " ORDER BY priority DESC, id"
        return [_row_to_rule(r) for r in self._execute(query, fetch='all')]

    def insert_rule(self, rule: TransactionRule) -> int:
        row = self._execute("""
            INSERT INTO transaction_rules (
                rule_name, merchant_pattern, match_type, category,
                auto_approve, priority, is_active
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """, (
            rule.rule_name, rule.merchant_pattern, MatchType(rule.match_type).value,
            rule.category, rule.auto_approve, rule.priority, rule.is_active,
        ), fetch='one')
        return row['id']

    # Expenses

    def insert_expense(self, expense: Expense) -> int:
        row = self._execute("""
            INSERT INTO expenses (description, category, amount, date, vendor, payment_method)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING id
        """, (
            expense.description, expense.category, expense.amount, expense.date,
            expense.vendor, expense.payment_method,
        ), fetch='one')
        return row['id']

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        row = self._execute("SELECT * FROM expenses WHERE id = %s", (expense_id,), fetch='one')
        return _row_to_expense(row) if row else None

    def find_expenses(self, start: date, end: date, amount: Decimal) -> List[Expense]:
        rows = self._execute("""
            SELECT * FROM expenses
            WHERE date BETWEEN %s AND %s
              AND amount = %s
            ORDER BY date, id
        """, (start, end, amount), fetch='all')
        return [_row_to_expense(r) for r in rows]

    # Sales channels

    def get_order(self, order_id: int, for_update: bool = False) -> Optional[ChannelOrder]:
        query = "SELECT * FROM channel_orders WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        row = self._execute(query, (order_id,), fetch='one')
        return _row_to_order(row) if row else None

    def find_invoices(self, start: date, end: date) -> List[Invoice]:
        rows = self._execute("""
            SELECT id, invoice_number, invoice_date, total FROM invoices
            WHERE invoice_date BETWEEN %s AND %s
            ORDER BY invoice_date, id
        """, (start, end), fetch='all')
        return [
            Invoice(id=r['id'], invoice_number=r['invoice_number'],
                    invoice_date=r['invoice_date'], total=r['total'])
            for r in rows
        ]

    def link_order_invoice(self, order_id: int, invoice_id: int, matched_at: datetime) -> bool:
        count = self._execute("""
            UPDATE channel_orders
            SET linked_invoice_id = %s, matched_at = %s
            WHERE id = %s AND linked_invoice_id IS NULL
        """, (invoice_id, matched_at, order_id))
        return count == 1

    def list_fees(self, order_id: Optional[int] = None) -> List[ChannelFee]:
        if order_id is None:
            rows = self._execute(
                "SELECT * FROM channel_fees ORDER BY date DESC, id", fetch='all')
        else:
            rows = self._execute(
                "SELECT * FROM channel_fees WHERE order_id = %s ORDER BY date DESC, id",
                (order_id,), fetch='all')
        return [_row_to_fee(r) for r in rows]

    def get_fee(self, fee_id: int, for_update: bool = False) -> Optional[ChannelFee]:
        query = "SELECT * FROM channel_fees WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        row = self._execute(query, (fee_id,), fetch='one')
        return _row_to_fee(row) if row else None

    def link_fee_expense(self, fee_id: int, expense_id: int, synced_at: datetime) -> bool:
        count = self._execute("""
            UPDATE channel_fees
            SET linked_expense_id = %s, synced_at = %s
            WHERE id = %s AND linked_expense_id IS NULL
        """, (expense_id, synced_at, fee_id))
        return count == 1
