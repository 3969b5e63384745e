"""
Domain models for the bank feed reconciliation engine

Plain dataclasses shared by the categorizer, duplicate detector,
state machine, orchestrators and record stores.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class TransactionStatus(str, Enum):
    """Reconciliation status of a bank transaction"""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    SYNCED = 'synced'


class MatchType(str, Enum):
    """How a rule pattern is compared to the merchant name"""
    CONTAINS = 'contains'
    STARTS_WITH = 'starts_with'
    ENDS_WITH = 'ends_with'
    EXACT = 'exact'
    REGEX = 'regex'


@dataclass
class BankAccount:
    """A linked bank account (deactivated, never deleted)"""
    id: Optional[int]
    external_account_id: str
    institution_name: str
    account_name: str
    user_id: Optional[str] = None
    account_type: Optional[str] = None
    account_subtype: Optional[str] = None
    mask: Optional[str] = None
    current_balance: Decimal = Decimal('0.00')
    available_balance: Decimal = Decimal('0.00')
    currency_code: str = 'USD'
    is_active: bool = True
    last_synced_at: Optional[datetime] = None


@dataclass
class BankTransaction:
    """Transaction from the bank feed plus its reconciliation state"""
    id: Optional[int]
    bank_account_id: int
    external_id: str
    date: date
    name: str
    amount: Decimal  # negative = money out of the account
    merchant_name: Optional[str] = None
    provider_categories: List[str] = field(default_factory=list)
    pending: bool = False

    # Filled by categorization
    suggested_category: Optional[str] = None
    confidence_score: Optional[float] = None

    # Filled by review and sync
    status: TransactionStatus = TransactionStatus.PENDING
    approved_category: Optional[str] = None
    linked_expense_id: Optional[int] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """Merchant name when the provider supplied one, else the raw name"""
        return self.merchant_name or self.name


@dataclass
class TransactionRule:
    """Merchant matching rule"""
    id: Optional[int]
    merchant_pattern: str
    category: str
    match_type: MatchType = MatchType.CONTAINS
    priority: int = 0
    auto_approve: bool = False
    rule_name: Optional[str] = None
    is_active: bool = True


@dataclass
class Expense:
    """Ledger entry"""
    id: Optional[int]
    description: str
    category: Optional[str]
    amount: Decimal
    date: date
    vendor: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Invoice:
    id: Optional[int]
    total: Decimal
    invoice_date: date
    invoice_number: Optional[str] = None


@dataclass
class ChannelOrder:
    """Sales channel order (Amazon, Ecwid, ...)"""
    id: Optional[int]
    channel: str
    channel_order_id: str
    order_date: date
    total_amount: Decimal
    customer_name: Optional[str] = None
    status: Optional[str] = None
    linked_invoice_id: Optional[int] = None
    matched_at: Optional[datetime] = None


@dataclass
class ChannelFee:
    """Fee charged by a sales channel against an order"""
    id: Optional[int]
    order_id: int
    channel: str
    fee_type: str
    fee_description: str
    amount: Decimal
    date: date
    linked_expense_id: Optional[int] = None
    synced_at: Optional[datetime] = None


@dataclass
class BatchError:
    item_id: Optional[int]
    message: str


@dataclass
class BatchResult:
    """Outcome of a batch operation: success count plus per-item errors"""
    succeeded: int = 0
    errors: List[BatchError] = field(default_factory=list)
    stopped_early: bool = False

    def add_error(self, item_id: Optional[int], message: str):
        self.errors.append(BatchError(item_id=item_id, message=message))

    @property
    def failed(self) -> int:
        return len(self.errors)
