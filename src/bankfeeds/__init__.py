"""
Bank Feeds

Bank-feed reconciliation for small-business bookkeeping: categorizes
incoming bank transactions, flags likely duplicates of recorded expenses,
and promotes approved transactions to expenses exactly once.
"""

__version__ = "1.0.0"
