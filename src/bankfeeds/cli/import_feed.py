#!/usr/bin/env python3
"""
Bank feed import CLI

Imports accounts and transactions from a Plaid-style JSON feed export.
Re-importing the same file is safe: known transactions are skipped.
"""
import argparse
import sys
from pathlib import Path

from bankfeeds.config import config, configure_logging
from bankfeeds.core.feed_ingestion import FeedIngestor
from bankfeeds.core.feed_parser import FeedParseError, parse_feed_file
from bankfeeds.core.sync_orchestrator import SyncOrchestrator, print_batch_result
from bankfeeds.store.base import StoreError
from bankfeeds.store.memory import InMemoryStore
from bankfeeds.store.postgres import PostgresStore
from bankfeeds.utils.db_connection import describe_target, get_db_connection


def print_sample(store, transaction_ids: list, limit: int = 10):
    """Show the first few imported transactions with their suggestion"""
    print(f"\n📋 Sample Results (first {limit}):")
    for i, txn_id in enumerate(transaction_ids[:limit], 1):
        txn = store.get_transaction(txn_id)
        if txn is None:
            continue
        suggestion = txn.suggested_category or '-'
        confidence = f"{txn.confidence_score:.0%}" if txn.confidence_score is not None else ''
        print(f"   {i:2d}. {txn.display_name[:40]:<40} ${txn.amount:>9.2f}  → {suggestion} {confidence}")

    if len(transaction_ids) > limit:
        print(f"       ... and {len(transaction_ids) - limit} more")


def main():
    """Main import function"""
    parser = argparse.ArgumentParser(description='Import a bank feed JSON export')
    parser.add_argument('feed_file', help='Path to feed JSON file')
    parser.add_argument('--categorize', action='store_true',
                        help='Suggest categories for pending transactions after import')
    parser.add_argument('--dry-run', action='store_true',
                        help='Parse and categorize in memory without touching the database')

    args = parser.parse_args()
    configure_logging()

    feed_path = Path(args.feed_file)
    if not feed_path.exists():
        print(f"❌ File not found: {feed_path}")
        sys.exit(1)

    print("=" * 80)
    print("📥 BANK FEED IMPORT")
    print("=" * 80)
    print(f"Feed File: {feed_path}")
    print(f"Categorize: {args.categorize}")
    print(f"Dry Run: {args.dry_run}")
    print(f"Outflows reported positive: {config.FEED_AMOUNTS_POSITIVE_OUTFLOW}")
    print("=" * 80)

    print(f"\n📄 Parsing feed file...")
    try:
        feed = parse_feed_file(feed_path)
    except FeedParseError as e:
        print(f"   ❌ {e}")
        sys.exit(1)
    print(f"   ✅ {len(feed.accounts)} accounts, {len(feed.transactions)} transactions")

    conn = None
    if args.dry_run:
        print(f"\n🔍 DRY RUN - using an in-memory store")
        store = InMemoryStore()
    else:
        print(f"\n🔌 Connecting to {describe_target()}...")
        try:
            conn = get_db_connection()
            print("   ✅ Connected")
        except Exception as e:
            print(f"   ❌ Connection failed: {e}")
            sys.exit(1)
        store = PostgresStore(conn)

    try:
        print(f"\n💾 Ingesting...")
        result = FeedIngestor(store).ingest(feed)

        print(f"   ✅ Accounts refreshed: {result.accounts}")
        print(f"   ✅ Inserted: {result.inserted}")
        if result.duplicates > 0:
            print(f"   ⏭️  Skipped (already imported): {result.duplicates}")
        if result.errors:
            print(f"   ❌ Errors: {len(result.errors)}")
            for error in result.errors[:10]:
                print(f"      • {error.message}")

        if args.categorize:
            print(f"\n🏷️  Categorizing pending transactions...")
            orchestrator = SyncOrchestrator(store)
            batch = orchestrator.auto_categorize_pending_transactions()
            print_batch_result("Categorized", batch)
            orchestrator.print_stats()

        if result.inserted_ids:
            print_sample(store, result.inserted_ids)

        print("\n" + "=" * 80)
        print("✅ Import complete!")
        print("=" * 80)

    except StoreError as e:
        print(f"\n❌ Import failed: {e}")
        sys.exit(1)
    finally:
        if conn is not None:
            conn.close()


if __name__ == "__main__":
    main()
