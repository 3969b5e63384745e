"""
Sync Orchestrator

Entry points used by the CLI and scheduled jobs:
1. Auto-categorize every pending transaction (rules -> provider hint -> none)
2. Approve / reject single transactions on behalf of a reviewer
3. Promote approved transactions to expenses

Batches run sequentially and isolate failures per item: one bad row is
recorded in the BatchResult errors and the batch moves on.
"""
import logging
from typing import Callable, Optional, Set

from ..config import config
from ..store.base import RecordStore, StoreError
from .categorizer import categorize_transaction
from .duplicate_detector import DuplicateDetector, DuplicatePolicy
from ..models import BatchResult, TransactionStatus
from .reconciliation import ReconciliationStateMachine
from .rule_matcher import RuleMatcher

logger = logging.getLogger(__name__)


def _require_reviewer(reviewer_id: Optional[str]):
    if not reviewer_id or not str(reviewer_id).strip():
        raise ValueError("A reviewer identity is required to change a transaction's status")


class SyncOrchestrator:
    """
    Coordinates categorization, review and promotion over one record store
    """

    def __init__(self,
                 store: RecordStore,
                 duplicate_policy: DuplicatePolicy = DuplicatePolicy.IGNORE_ERRORS):
        """
        Args:
            store: Record store holding transactions, rules and expenses
            duplicate_policy: How duplicate lookups treat store failures
        """
        self.store = store
        self.state_machine = ReconciliationStateMachine(store)
        self.duplicate_detector = DuplicateDetector(store, policy=duplicate_policy)

        self.stats = {
            'categorized': 0,
            'auto_approved': 0,
            'synced': 0,
            'errors': 0,
        }

    def load_rule_matcher(self) -> RuleMatcher:
        """Fetch active rules once per batch"""
        return RuleMatcher(self.store.list_rules(active_only=True))

    def auto_categorize_pending_transactions(self,
                                             should_stop: Optional[Callable[[], bool]] = None,
                                             matcher: Optional[RuleMatcher] = None) -> BatchResult:
        """
        Suggest a category for every pending transaction

        Re-running overwrites earlier suggestions on rows that are still
        pending; a row reviewed since the list was read is left alone and
        recorded as an error. Rules flagged
        auto_approve also approve the transaction under a system reviewer.

        Args:
            should_stop: Optional callable checked before each item; returning
                True ends the batch early with a valid partial result
            matcher: Pre-loaded rules (loaded from the store when omitted)

        Returns:
            BatchResult (succeeded = suggestions written)
        """
        result = BatchResult()

        try:
            if matcher is None:
                matcher = self.load_rule_matcher()
            transactions = self.store.list_transactions(status=TransactionStatus.PENDING)
        except StoreError as e:
            logger.error("Could not load rules or pending transactions: %s", e)
            result.add_error(None, f"load failed: {e}")
            return result

        for transaction in transactions:
            if should_stop is not None and should_stop():
                result.stopped_early = True
                logger.info("Auto-categorization stopped after %d transactions", result.succeeded)
                break

            categorization = categorize_transaction(transaction, matcher)

            try:
                updated = self.store.update_suggestion(
                    transaction.id, categorization.category, categorization.confidence)
            except StoreError as e:
                logger.warning("Could not save suggestion for transaction %s: %s", transaction.id, e)
                result.add_error(transaction.id, str(e))
                continue

            if not updated:
                result.add_error(transaction.id, "transaction is no longer pending")
                continue

            result.succeeded += 1

            if categorization.auto_approve:
                reviewer = f"{config.AUTO_REVIEWER_PREFIX}:{categorization.matched_rule.id}"
                if self.state_machine.approve(transaction.id, categorization.category, reviewer):
                    self.stats['auto_approved'] += 1
                else:
                    result.add_error(transaction.id, "auto-approve failed")

        self.stats['categorized'] += result.succeeded
        self.stats['errors'] += result.failed
        return result

    auto_categorize_all = auto_categorize_pending_transactions

    def approve_transaction(self, transaction_id: int, category: str, reviewer_id: str) -> bool:
        _require_reviewer(reviewer_id)
        return self.state_machine.approve(transaction_id, category, reviewer_id)

    def reject_transaction(self, transaction_id: int, reviewer_id: str) -> bool:
        _require_reviewer(reviewer_id)
        return self.state_machine.reject(transaction_id, reviewer_id)

    def sync_transaction_to_expense(self, transaction_id: int) -> Optional[int]:
        """
        Promote one approved transaction

        Returns:
            New expense id, or None (not approved, or persistence error)
        """
        expense_id = self.state_machine.sync(transaction_id)
        if expense_id is not None:
            self.stats['synced'] += 1
        return expense_id

    def sync_approved_transactions(self,
                                   should_stop: Optional[Callable[[], bool]] = None) -> BatchResult:
        """Promote every approved transaction"""
        result = BatchResult()

        try:
            transactions = self.store.list_transactions(status=TransactionStatus.APPROVED)
        except StoreError as e:
            logger.error("Could not load approved transactions: %s", e)
            result.add_error(None, f"load failed: {e}")
            return result

        for transaction in transactions:
            if should_stop is not None and should_stop():
                result.stopped_early = True
                break

            if self.sync_transaction_to_expense(transaction.id) is not None:
                result.succeeded += 1
            else:
                result.add_error(transaction.id, "sync failed")

        self.stats['errors'] += result.failed
        return result

    def find_duplicates(self, transaction_id: int) -> Set[int]:
        """Expense ids that may already record this transaction"""
        try:
            transaction = self.store.get_transaction(transaction_id)
        except StoreError as e:
            if self.duplicate_detector.policy is DuplicatePolicy.RAISE:
                raise
            logger.warning("Could not load transaction %s: %s", transaction_id, e)
            return set()

        if transaction is None:
            return set()
        return self.duplicate_detector.find_duplicates(transaction)

    def print_stats(self):
        """Print orchestrator statistics"""
        print("\n" + "=" * 80)
        print("📊 RECONCILIATION STATISTICS")
        print("=" * 80)
        print(f"  • Categorized: {self.stats['categorized']}")
        print(f"  • Auto-approved: {self.stats['auto_approved']}")
        print(f"  • Synced to expenses: {self.stats['synced']}")
        print(f"  • Errors: {self.stats['errors']}")
        print("=" * 80)


def print_batch_result(label: str, result: BatchResult, max_errors: int = 10):
    """Report 'N succeeded' plus the error list"""
    print(f"\n✅ {label}: {result.succeeded} succeeded")
    if result.stopped_early:
        print("   ⏹️  Stopped early")
    if result.errors:
        print(f"   ❌ Errors: {result.failed}")
        for error in result.errors[:max_errors]:
            item = f"#{error.item_id}" if error.item_id is not None else "batch"
            print(f"      • {item}: {error.message}")
        if result.failed > max_errors:
            print(f"      ... and {result.failed - max_errors} more")
