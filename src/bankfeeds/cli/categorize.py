#!/usr/bin/env python3
"""
Auto-categorization CLI

Suggests a category for every pending bank transaction.
"""
import argparse
import sys

from bankfeeds.config import configure_logging
from bankfeeds.core.sync_orchestrator import SyncOrchestrator, print_batch_result
from bankfeeds.store.base import StoreError
from bankfeeds.store.postgres import PostgresStore
from bankfeeds.utils.db_connection import get_db_connection


def main():
    parser = argparse.ArgumentParser(description='Suggest categories for pending bank transactions')
    parser.add_argument('--show-rules', action='store_true', help='Print per-rule match counts')
    args = parser.parse_args()

    configure_logging()

    print("=" * 80)
    print("🏷️  AUTO-CATEGORIZATION")
    print("=" * 80)

    try:
        conn = get_db_connection()
    except Exception as e:
        print(f"❌ Database connection failed: {e}")
        sys.exit(1)

    try:
        orchestrator = SyncOrchestrator(PostgresStore(conn))
        matcher = orchestrator.load_rule_matcher()
        print(f"📚 Loaded {len(matcher.rules)} active rules")

        result = orchestrator.auto_categorize_pending_transactions(matcher=matcher)
        print_batch_result("Categorized", result)
        orchestrator.print_stats()

        if args.show_rules:
            matcher.print_stats()
    except StoreError as e:
        print(f"\n❌ Categorization failed: {e}")
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
