"""
Categorizer

Suggests a category for a bank transaction using:
1. Transaction rules (highest priority, fixed high confidence)
2. The feed provider's own category hints (medium confidence)
3. 'Uncategorized' with zero confidence
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

from ..config import config
from ..models import BankTransaction, TransactionRule
from .rule_matcher import RuleMatcher


@dataclass
class CategorizationResult:
    """Result of categorization attempt"""
    category: str
    confidence: float  # 0.0 to 1.0
    source: str  # 'rule', 'provider', 'none'
    matched_rule: Optional[TransactionRule] = None

    @property
    def auto_approve(self) -> bool:
        return bool(self.matched_rule and self.matched_rule.auto_approve)

    def as_tuple(self) -> Tuple[str, float]:
        return self.category, self.confidence


def first_provider_hint(transaction: BankTransaction) -> Optional[str]:
    """First usable entry of the provider category list"""
    hints = transaction.provider_categories
    if not hints or isinstance(hints, str):
        return None

    hint = hints[0]
    if isinstance(hint, str) and hint.strip():
        return hint.strip()
    return None


def categorize_transaction(transaction: BankTransaction,
                           rules: Union[RuleMatcher, Iterable[TransactionRule]]) -> CategorizationResult:
    """
    Categorize a single transaction

    Args:
        transaction: Bank transaction to categorize
        rules: A loaded RuleMatcher, or rules to load into a fresh one

    Returns:
        CategorizationResult
    """
    matcher = rules if isinstance(rules, RuleMatcher) else RuleMatcher(rules)

    rule = matcher.find_match(transaction.display_name)
    if rule is not None:
        return CategorizationResult(
            category=rule.category,
            confidence=config.RULE_CONFIDENCE,
            source='rule',
            matched_rule=rule,
        )

    hint = first_provider_hint(transaction)
    if hint is not None:
        return CategorizationResult(
            category=hint,
            confidence=config.PROVIDER_CONFIDENCE,
            source='provider',
        )

    return CategorizationResult(
        category=config.UNCATEGORIZED,
        confidence=0.0,
        source='none',
    )


def categorize(transaction: BankTransaction,
               rules: Union[RuleMatcher, Iterable[TransactionRule]]) -> Tuple[str, float]:
    """(category, confidence) for a transaction"""
    return categorize_transaction(transaction, rules).as_tuple()
