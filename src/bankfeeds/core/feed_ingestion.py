"""
Feed ingestion

Stores parsed feed records. Safe to replay the same feed any number of
times: accounts are upserted by external account id (balances refreshed),
transactions are inserted only if their external id is new.

Sign convention: internally a negative amount is money leaving the
account. Plaid-style feeds report outflows as positive, so their amounts
are negated on the way in (see FEED_AMOUNTS_POSITIVE_OUTFLOW).
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from ..config import config
from ..store.base import RecordStore, StoreError
from .feed_parser import FeedPayload, FeedTransaction
from ..models import BankAccount, BankTransaction, BatchError, TransactionStatus

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    accounts: int = 0
    inserted: int = 0
    duplicates: int = 0
    errors: List[BatchError] = field(default_factory=list)
    inserted_ids: List[int] = field(default_factory=list)


def to_internal_amount(feed_amount: Decimal, positive_outflow: Optional[bool] = None) -> Decimal:
    """Convert a feed amount to the internal convention (negative = outflow)"""
    if positive_outflow is None:
        positive_outflow = config.FEED_AMOUNTS_POSITIVE_OUTFLOW
    amount = Decimal(feed_amount)
    return -amount if positive_outflow else amount


class FeedIngestor:
    """
    Writes feed accounts and transactions to the record store
    """

    def __init__(self, store: RecordStore, positive_outflow: Optional[bool] = None):
        self.store = store
        self.positive_outflow = positive_outflow

    def ingest(self, feed: FeedPayload) -> IngestResult:
        """
        Ingest one feed delivery

        Returns:
            IngestResult with inserted / duplicate / error counts
        """
        result = IngestResult()
        synced_at = datetime.now().astimezone()
        account_ids: Dict[str, int] = {}

        for feed_account in feed.accounts:
            try:
                self.store.upsert_account(BankAccount(
                    id=None,
                    user_id=feed.user_id,
                    external_account_id=feed_account.external_account_id,
                    institution_name=feed_account.institution_name,
                    account_name=feed_account.account_name,
                    account_type=feed_account.account_type,
                    account_subtype=feed_account.account_subtype,
                    mask=feed_account.mask,
                    current_balance=feed_account.current_balance,
                    available_balance=feed_account.available_balance,
                    currency_code=feed_account.currency_code,
                    last_synced_at=synced_at,
                ))
            except StoreError as e:
                logger.error("Could not save account %s: %s", feed_account.external_account_id, e)
                result.errors.append(BatchError(None, f"account {feed_account.external_account_id}: {e}"))
                continue

            result.accounts += 1

        for feed_txn in feed.transactions:
            self._ingest_transaction(feed_txn, account_ids, result)

        logger.info("Ingested feed: %d inserted, %d duplicates, %d errors",
                    result.inserted, result.duplicates, len(result.errors))
        return result

    def _resolve_account(self, external_account_id: str, account_ids: Dict[str, int]) -> Optional[int]:
        if external_account_id not in account_ids:
            account = self.store.get_account_by_external_id(external_account_id)
            if account is None or not account.is_active:
                return None
            account_ids[external_account_id] = account.id
        return account_ids[external_account_id]

    def _ingest_transaction(self, feed_txn: FeedTransaction,
                            account_ids: Dict[str, int], result: IngestResult):
        try:
            account_id = self._resolve_account(feed_txn.external_account_id, account_ids)
            if account_id is None:
                result.errors.append(BatchError(
                    None, f"transaction {feed_txn.external_id}: unknown or inactive account "
                          f"{feed_txn.external_account_id}"))
                return

            new_id = self.store.insert_transaction(BankTransaction(
                id=None,
                bank_account_id=account_id,
                external_id=feed_txn.external_id,
                date=feed_txn.date,
                name=feed_txn.name,
                merchant_name=feed_txn.merchant_name,
                amount=to_internal_amount(feed_txn.amount, self.positive_outflow),
                provider_categories=list(feed_txn.categories),
                pending=feed_txn.pending,
                status=TransactionStatus.PENDING,
            ))
        except StoreError as e:
            logger.warning("Could not save transaction %s: %s", feed_txn.external_id, e)
            result.errors.append(BatchError(None, f"transaction {feed_txn.external_id}: {e}"))
            return

        if new_id is None:
            result.duplicates += 1
        else:
            result.inserted += 1
            result.inserted_ids.append(new_id)

    def deactivate_account(self, account_id: int) -> bool:
        """Stop ingesting for an account (accounts are never deleted)"""
        try:
            return self.store.deactivate_account(account_id)
        except StoreError as e:
            logger.error("Could not deactivate account %s: %s", account_id, e)
            return False
