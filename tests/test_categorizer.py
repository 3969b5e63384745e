"""Tests for the rule -> provider hint -> Uncategorized cascade."""
from bankfeeds.core.categorizer import categorize, categorize_transaction
from bankfeeds.core.rule_matcher import RuleMatcher
from bankfeeds.models import MatchType

from tests.factories import make_rule, make_transaction


def test_rule_match_wins_over_provider_hint():
    txn = make_transaction(1, name='SHELL OIL 123', provider_categories=['Travel', 'Gas Stations'])
    rules = [make_rule('SHELL', 'Auto & Transport', rule_id=1)]

    assert categorize(txn, rules) == ('Auto & Transport', 0.95)


def test_shell_fuel_rule_scores_095():
    txn = make_transaction(1, name='SHELL OIL 12345')
    rules = [make_rule('SHELL', 'Fuel/Mileage Expenses', match_type=MatchType.CONTAINS, rule_id=1)]

    result = categorize_transaction(txn, rules)

    assert result.as_tuple() == ('Fuel/Mileage Expenses', 0.95)
    assert result.source == 'rule'


def test_provider_hint_used_when_no_rule_matches():
    txn = make_transaction(1, name='CORNER DELI', provider_categories=['Food and Drink', 'Restaurants'])
    rules = [make_rule('SHELL', 'Auto & Transport', rule_id=1)]

    result = categorize_transaction(txn, rules)

    assert result.as_tuple() == ('Food and Drink', 0.60)
    assert result.source == 'provider'
    assert result.matched_rule is None


def test_uncategorized_without_rule_or_hint():
    txn = make_transaction(1, name='MYSTERY VENDOR')
    assert categorize(txn, []) == ('Uncategorized', 0.0)


def test_malformed_provider_hint_degrades_to_uncategorized():
    for hints in ([''], [None], [42], '   '):
        txn = make_transaction(1, name='MYSTERY VENDOR')
        txn.provider_categories = hints
        assert categorize(txn, []) == ('Uncategorized', 0.0)


def test_merchant_name_preferred_over_raw_name():
    txn = make_transaction(1, name='POS DEBIT 0421 SQ *BLUE BOTTLE', merchant_name='Blue Bottle Coffee')
    rules = [make_rule('Blue Bottle', 'Meals', match_type=MatchType.STARTS_WITH, rule_id=1)]

    assert categorize(txn, rules)[0] == 'Meals'


def test_preloaded_matcher_is_reused():
    matcher = RuleMatcher([make_rule('SHELL', 'Auto & Transport', rule_id=1)])

    for i in range(3):
        categorize_transaction(make_transaction(1, external_id=f't{i}'), matcher)

    assert matcher.stats['matches'] == 3


def test_auto_approve_flag_carried_from_rule():
    txn = make_transaction(1, name='NETFLIX.COM')
    rules = [make_rule('NETFLIX', 'Subscriptions', rule_id=4, auto_approve=True)]

    result = categorize_transaction(txn, rules)

    assert result.auto_approve is True
    assert result.matched_rule.id == 4
