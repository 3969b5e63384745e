"""
Reconciliation State Machine

Owns the lifecycle of a bank transaction:

    pending -> approved -> synced
    pending -> rejected

Every transition is a conditional update on the current status, so a
transaction can only move forward and is promoted to an expense at most
once, even with several writers racing on the same row.
"""
import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from ..config import config
from ..store.base import RecordStore, StoreError
from ..models import Expense, TransactionStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[TransactionStatus, FrozenSet[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({TransactionStatus.APPROVED, TransactionStatus.REJECTED}),
    TransactionStatus.APPROVED: frozenset({TransactionStatus.SYNCED}),
    TransactionStatus.REJECTED: frozenset(),
    TransactionStatus.SYNCED: frozenset(),
}


def can_transition(source: TransactionStatus, target: TransactionStatus) -> bool:
    return TransactionStatus(target) in ALLOWED_TRANSITIONS[TransactionStatus(source)]


class SyncAborted(Exception):
    """Raised inside a sync unit of work to roll it back"""


def _now() -> datetime:
    return datetime.now().astimezone()


class ReconciliationStateMachine:
    """
    Approve / reject / sync transitions over a record store
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def approve(self, transaction_id: int, category: str, reviewer_id: str) -> bool:
        """
        pending -> approved

        Returns:
            True if the transaction was pending and is now approved
        """
        if not category:
            logger.warning("Refusing to approve transaction %s without a category", transaction_id)
            return False

        try:
            changed = self.store.transition_transaction(
                transaction_id,
                TransactionStatus.PENDING,
                TransactionStatus.APPROVED,
                approved_category=category,
                reviewed_by=reviewer_id,
                reviewed_at=_now(),
            )
        except StoreError as e:
            logger.error("Approve failed for transaction %s: %s", transaction_id, e)
            return False

        if not changed:
            logger.info("Transaction %s not approved: missing or no longer pending", transaction_id)
        return changed

    def reject(self, transaction_id: int, reviewer_id: str) -> bool:
        """
        pending -> rejected (terminal)
        """
        try:
            changed = self.store.transition_transaction(
                transaction_id,
                TransactionStatus.PENDING,
                TransactionStatus.REJECTED,
                reviewed_by=reviewer_id,
                reviewed_at=_now(),
            )
        except StoreError as e:
            logger.error("Reject failed for transaction %s: %s", transaction_id, e)
            return False

        if not changed:
            logger.info("Transaction %s not rejected: missing or no longer pending", transaction_id)
        return changed

    def sync(self, transaction_id: int) -> Optional[int]:
        """
        approved -> synced, creating exactly one expense

        The transaction is re-read under a row lock inside one unit of work.
        If it is not approved nothing is written. If the expense insert or the
        status update fails the unit of work rolls back, leaving the
        transaction approved and no expense behind.

        Returns:
            The new expense id, or None
        """
        try:
            with self.store.atomic():
                transaction = self.store.get_transaction(transaction_id, for_update=True)
                if transaction is None:
                    logger.info("Sync skipped: transaction %s not found", transaction_id)
                    return None
                if transaction.status != TransactionStatus.APPROVED:
                    logger.info("Sync skipped: transaction %s is %s, not approved",
                                transaction_id, TransactionStatus(transaction.status).value)
                    return None

                expense_id = self.store.insert_expense(Expense(
                    id=None,
                    description=transaction.display_name,
                    category=transaction.approved_category,
                    amount=abs(transaction.amount),
                    date=transaction.date,
                    vendor=transaction.merchant_name,
                    payment_method=config.BANK_PAYMENT_METHOD,
                ))

                linked = self.store.transition_transaction(
                    transaction_id,
                    TransactionStatus.APPROVED,
                    TransactionStatus.SYNCED,
                    linked_expense_id=expense_id,
                )
                if not linked:
                    raise SyncAborted(f"transaction {transaction_id} changed status during sync")

        except SyncAborted as e:
            logger.warning("Sync rolled back: %s", e)
            return None
        except StoreError as e:
            logger.error("Sync failed for transaction %s: %s", transaction_id, e)
            return None

        logger.info("Synced transaction %s to expense %s", transaction_id, expense_id)
        return expense_id
