"""
Feed Parser for Plaid-style bank feed exports

Reads a JSON document with `accounts` and `transactions` arrays (the shape
returned by /accounts/get and /transactions/get) into plain records.
Amounts are kept exactly as the feed reports them; sign conversion happens
at ingestion.
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Union


class FeedParseError(ValueError):
    """Malformed feed document"""


@dataclass
class FeedAccount:
    external_account_id: str
    account_name: str
    institution_name: str = 'Unknown'
    account_type: Optional[str] = None
    account_subtype: Optional[str] = None
    mask: Optional[str] = None
    current_balance: Decimal = Decimal('0.00')
    available_balance: Decimal = Decimal('0.00')
    currency_code: str = 'USD'


@dataclass
class FeedTransaction:
    external_id: str
    external_account_id: str
    date: date
    name: str
    amount: Decimal  # as reported by the feed
    merchant_name: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    pending: bool = False


@dataclass
class FeedPayload:
    accounts: List[FeedAccount] = field(default_factory=list)
    transactions: List[FeedTransaction] = field(default_factory=list)
    user_id: Optional[str] = None


def parse_date(value) -> date:
    """Parse YYYY-MM-DD (or a full ISO timestamp) to a date"""
    if isinstance(value, date):
        return value
    if not value:
        raise FeedParseError("Missing date")

    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
    except ValueError:
        raise FeedParseError(f"Could not parse date: {value}")


def parse_amount(value) -> Decimal:
    """Parse amount to Decimal (missing balances become 0.00)"""
    if value is None or value == '':
        return Decimal('0.00')
    try:
        return Decimal(str(value).replace('$', '').replace(',', '').strip())
    except InvalidOperation:
        raise FeedParseError(f"Could not parse amount: {value}")


def parse_categories(value) -> List[str]:
    """Provider category hints; anything that is not a list of strings is dropped"""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [c for c in value if isinstance(c, str) and c.strip()]


def _parse_account(raw: Dict, institution_name: str) -> FeedAccount:
    account_id = raw.get('account_id')
    if not account_id:
        raise FeedParseError(f"Account without account_id: {raw}")

    balances = raw.get('balances') or {}
    return FeedAccount(
        external_account_id=str(account_id),
        account_name=raw.get('name') or raw.get('official_name') or str(account_id),
        institution_name=institution_name,
        account_type=raw.get('type'),
        account_subtype=raw.get('subtype'),
        mask=raw.get('mask'),
        current_balance=parse_amount(balances.get('current')),
        available_balance=parse_amount(balances.get('available')),
        currency_code=balances.get('iso_currency_code') or 'USD',
    )


def _parse_transaction(raw: Dict) -> FeedTransaction:
    transaction_id = raw.get('transaction_id')
    if not transaction_id:
        raise FeedParseError(f"Transaction without transaction_id: {raw}")
    if not raw.get('account_id'):
        raise FeedParseError(f"Transaction {transaction_id} has no account_id")
    if raw.get('amount') is None:
        raise FeedParseError(f"Transaction {transaction_id} has no amount")

    return FeedTransaction(
        external_id=str(transaction_id),
        external_account_id=str(raw['account_id']),
        date=parse_date(raw.get('date')),
        name=(raw.get('name') or raw.get('merchant_name') or '').strip(),
        amount=parse_amount(raw['amount']),
        merchant_name=(raw.get('merchant_name') or None),
        categories=parse_categories(raw.get('category')),
        pending=bool(raw.get('pending', False)),
    )


def parse_feed_payload(payload: Dict) -> FeedPayload:
    """
    Parse a decoded feed document

    Args:
        payload: Dict with optional `institution`, `user_id`, `accounts`
            and `transactions`

    Returns:
        FeedPayload
    """
    if not isinstance(payload, dict):
        raise FeedParseError("Feed document must be a JSON object")

    institution = payload.get('institution') or {}
    institution_name = institution.get('name') if isinstance(institution, dict) else None

    return FeedPayload(
        accounts=[_parse_account(a, institution_name or 'Unknown')
                  for a in payload.get('accounts') or []],
        transactions=[_parse_transaction(t) for t in payload.get('transactions') or []],
        user_id=payload.get('user_id'),
    )


def parse_feed_file(path: Union[str, Path]) -> FeedPayload:
    """Load and parse a feed JSON file"""
    with open(path, 'r', encoding='utf-8') as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise FeedParseError(f"Feed file is not valid JSON: {e}")
    return parse_feed_payload(payload)
