"""
Reconciliation engine core

Rules and categorization, duplicate detection, the transaction state
machine and the batch orchestrators built on top of them.
"""

# Expose main classes for easy imports
from .categorizer import categorize, categorize_transaction, CategorizationResult
from .duplicate_detector import DuplicateDetector, DuplicatePolicy
from .reconciliation import ReconciliationStateMachine
from .rule_matcher import RuleMatcher
from .sync_orchestrator import SyncOrchestrator

__all__ = [
    'categorize',
    'categorize_transaction',
    'CategorizationResult',
    'DuplicateDetector',
    'DuplicatePolicy',
    'ReconciliationStateMachine',
    'RuleMatcher',
    'SyncOrchestrator',
]
