"""
Bank Feeds - Configuration and Constants

PURPOSE: Central configuration for the reconciliation engine
SCOPE: Confidence levels, matching windows, sentinels, env overrides
DEPENDENCIES: python-dotenv
"""
import logging
import os
from dataclasses import dataclass, fields
from decimal import Decimal

from dotenv import load_dotenv


# Load environment variables
load_dotenv()


@dataclass
class ReconciliationConfig:
    """Engine tunables (every field can be overridden by an env var of the same name)"""
    RULE_CONFIDENCE: float = 0.95
    PROVIDER_CONFIDENCE: float = 0.60
    UNCATEGORIZED: str = 'Uncategorized'

    DUPLICATE_WINDOW_DAYS: int = 3
    DUPLICATE_MAX_DISTANCE: int = 5

    CHANNEL_MATCH_WINDOW_DAYS: int = 7
    CHANNEL_AMOUNT_TOLERANCE: Decimal = Decimal('0.01')

    BANK_PAYMENT_METHOD: str = 'Bank Account'
    AUTO_REVIEWER_PREFIX: str = 'auto-rule'

    # Plaid reports money leaving the account as a positive amount
    FEED_AMOUNTS_POSITIVE_OUTFLOW: bool = True

    @classmethod
    def from_env(cls) -> 'ReconciliationConfig':
        """Build config from defaults, overridden by environment variables"""
        config = cls()
        for field in fields(cls):
            raw = os.getenv(field.name)
            if raw is None:
                continue
            current = getattr(config, field.name)
            if isinstance(current, bool):
                value = raw.strip().lower() in ('1', 'true', 'yes')
            elif isinstance(current, Decimal):
                value = Decimal(raw)
            else:
                value = type(current)(raw)
            setattr(config, field.name, value)
        return config


# Global configuration instance
config = ReconciliationConfig.from_env()


def configure_logging(level: str = None):
    """Set up logging for the command line tools (LOG_LEVEL env var, default WARNING)"""
    logging.basicConfig(
        level=(level or os.getenv('LOG_LEVEL', 'WARNING')).upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
