"""
Rule Matcher Engine

Matches merchant names against transaction rules with support for:
- Multiple match types: contains, starts_with, ends_with, exact, regex
- Priority-based rule selection (highest priority first, first match wins)
- Regex patterns compiled once when rules are loaded
"""
import logging
import re
from enum import Enum
from typing import Dict, Iterable, List, Optional, Pattern

from ..models import MatchType, TransactionRule

logger = logging.getLogger(__name__)


class MatchOutcome(Enum):
    MATCHED = 'matched'
    NO_MATCH = 'no_match'
    PATTERN_INVALID = 'pattern_invalid'


class RuleMatcher:
    """
    Ordered, pre-compiled rule set
    """

    def __init__(self, rules: Optional[Iterable[TransactionRule]] = None):
        self.rules: List[TransactionRule] = []
        self._compiled: Dict[int, Optional[Pattern]] = {}
        self.stats = {
            'matches': 0,
            'no_match': 0,
            'invalid_patterns': 0,
            'by_rule': {},
        }
        if rules is not None:
            self.load_rules(rules)

    def load_rules(self, rules: Iterable[TransactionRule]):
        """
        Load rules from the store or a list

        Inactive rules are dropped. Rules are sorted by descending priority;
        sorted() is stable, so equal priorities keep their load order.
        """
        active = [r for r in rules if r.is_active]
        self.rules = sorted(active, key=lambda r: -r.priority)

        self._compiled = {}
        for index, rule in enumerate(self.rules):
            if _match_type(rule) is MatchType.REGEX:
                try:
                    self._compiled[index] = re.compile(rule.merchant_pattern, re.IGNORECASE)
                except re.error as e:
                    logger.warning("Invalid regex in rule %s (%r): %s",
                                   rule.id, rule.merchant_pattern, e)
                    self._compiled[index] = None

        logger.debug("Loaded %d active rules", len(self.rules))

    def _match_at(self, index: int, merchant: str) -> MatchOutcome:
        rule = self.rules[index]
        match_type = _match_type(rule)

        if match_type is MatchType.REGEX:
            pattern = self._compiled.get(index)
            if pattern is None:
                return MatchOutcome.PATTERN_INVALID
            return MatchOutcome.MATCHED if pattern.search(merchant) else MatchOutcome.NO_MATCH

        return match_rule(rule, merchant)

    def find_match(self, merchant_name: str) -> Optional[TransactionRule]:
        """
        Return the first (highest priority) rule matching the merchant

        Args:
            merchant_name: Merchant display name

        Returns:
            Matching rule, or None
        """
        merchant = (merchant_name or '').upper()

        for index, rule in enumerate(self.rules):
            outcome = self._match_at(index, merchant)
            if outcome is MatchOutcome.PATTERN_INVALID:
                self.stats['invalid_patterns'] += 1
                continue
            if outcome is MatchOutcome.MATCHED:
                self.stats['matches'] += 1
                self.stats['by_rule'][rule.id] = self.stats['by_rule'].get(rule.id, 0) + 1
                return rule

        self.stats['no_match'] += 1
        return None

    def print_stats(self):
        """Print matching statistics"""
        total = self.stats['matches'] + self.stats['no_match']
        if total == 0:
            print("No transactions processed yet")
            return

        print("\n" + "=" * 80)
        print("📊 RULE MATCHER STATISTICS")
        print("=" * 80)
        print(f"Total lookups: {total}")
        print(f"  ✅ Matched: {self.stats['matches']} ({self.stats['matches']/total*100:.1f}%)")
        print(f"  ❌ No match: {self.stats['no_match']} ({self.stats['no_match']/total*100:.1f}%)")
        if self.stats['invalid_patterns']:
            print(f"  ⚠️  Invalid regex skips: {self.stats['invalid_patterns']}")

        if self.stats['by_rule']:
            print(f"\nMatches by rule:")
            for rule_id, count in sorted(self.stats['by_rule'].items(),
                                         key=lambda x: x[1], reverse=True):
                print(f"  • rule {rule_id}: {count}")
        print("=" * 80)


def _match_type(rule: TransactionRule) -> Optional[MatchType]:
    try:
        return MatchType(rule.match_type)
    except ValueError:
        return None


def match_rule(rule: TransactionRule, merchant_name: str) -> MatchOutcome:
    """
    Check a single rule against a merchant name (case-insensitive)

    Regex rules are compiled on the spot here; RuleMatcher pre-compiles them.
    Never raises: a bad regex is reported as PATTERN_INVALID.
    """
    merchant = (merchant_name or '').upper()
    pattern = (rule.merchant_pattern or '').upper()
    match_type = _match_type(rule)

    if match_type is MatchType.CONTAINS:
        matched = pattern in merchant
    elif match_type is MatchType.STARTS_WITH:
        matched = merchant.startswith(pattern)
    elif match_type is MatchType.ENDS_WITH:
        matched = merchant.endswith(pattern)
    elif match_type is MatchType.EXACT:
        matched = merchant == pattern
    elif match_type is MatchType.REGEX:
        try:
            matched = bool(re.search(rule.merchant_pattern, merchant, re.IGNORECASE))
        except re.error:
            return MatchOutcome.PATTERN_INVALID
    else:
        matched = False

    return MatchOutcome.MATCHED if matched else MatchOutcome.NO_MATCH
