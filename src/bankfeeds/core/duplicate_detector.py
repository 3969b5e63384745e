"""
Duplicate Detector

Flags existing expenses that are probably the same purchase as a bank
transaction, so a manually entered expense is not booked twice:
- Same absolute amount (exact)
- Dated within a few days of the transaction
- Merchant text contained in the description (either way) or within a
  small edit distance of it
"""
import logging
from datetime import timedelta
from enum import Enum
from typing import Optional, Set

from rapidfuzz.distance import Levenshtein

from ..config import config
from ..store.base import RecordStore, StoreError
from ..models import BankTransaction

logger = logging.getLogger(__name__)


class DuplicatePolicy(Enum):
    """What a store failure during the lookup turns into"""
    IGNORE_ERRORS = 'ignore'  # log and report no duplicates
    RAISE = 'raise'


def levenshtein_distance(first: str, second: str) -> int:
    """Single-character insert/delete/substitute distance"""
    return int(Levenshtein.distance(first, second))


def is_text_match(merchant: str, description: str, max_distance: Optional[int] = None) -> bool:
    """
    Compare merchant text with an expense description (case-insensitive)

    Returns:
        True if either string contains the other, or their edit distance
        is strictly below max_distance. Empty text never matches.
    """
    if max_distance is None:
        max_distance = config.DUPLICATE_MAX_DISTANCE

    merchant = (merchant or '').lower()
    description = (description or '').lower()

    if not merchant or not description:
        return False
    if merchant in description or description in merchant:
        return True
    return levenshtein_distance(merchant, description) < max_distance


class DuplicateDetector:
    """
    Looks up candidate expenses in the record store
    """

    def __init__(self,
                 store: RecordStore,
                 policy: DuplicatePolicy = DuplicatePolicy.IGNORE_ERRORS,
                 window_days: Optional[int] = None,
                 max_distance: Optional[int] = None):
        self.store = store
        self.policy = policy
        self.window_days = config.DUPLICATE_WINDOW_DAYS if window_days is None else window_days
        self.max_distance = config.DUPLICATE_MAX_DISTANCE if max_distance is None else max_distance

    def find_duplicates(self, transaction: BankTransaction) -> Set[int]:
        """
        Find expenses that plausibly duplicate the transaction

        Args:
            transaction: Bank transaction being reconciled

        Returns:
            Set of expense ids (empty on store failure under IGNORE_ERRORS)
        """
        start = transaction.date - timedelta(days=self.window_days)
        end = transaction.date + timedelta(days=self.window_days)

        try:
            candidates = self.store.find_expenses(start, end, abs(transaction.amount))
        except StoreError as e:
            if self.policy is DuplicatePolicy.RAISE:
                raise
            logger.warning("Duplicate lookup failed for transaction %s: %s", transaction.id, e)
            return set()

        merchant = transaction.display_name
        return {
            expense.id for expense in candidates
            if is_text_match(merchant, expense.description, self.max_distance)
        }
