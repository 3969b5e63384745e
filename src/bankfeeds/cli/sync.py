#!/usr/bin/env python3
"""
Expense sync CLI

Promotes approved bank transactions to expenses. Channel orders and fees
can be reconciled in the same run.
"""
import argparse
import sys

from bankfeeds.config import configure_logging
from bankfeeds.core.channel_matching import ChannelMatcher
from bankfeeds.core.sync_orchestrator import SyncOrchestrator, print_batch_result
from bankfeeds.store.base import StoreError
from bankfeeds.store.postgres import PostgresStore
from bankfeeds.utils.db_connection import get_db_connection


def sync_channel(store: PostgresStore, order_id: int = None, all_fees: bool = False):
    """Link an order to its invoice and book channel fees as expenses"""
    matcher = ChannelMatcher(store)

    if order_id is not None:
        print(f"\n🛒 Matching order #{order_id} to an invoice...")
        invoice_id = matcher.match_order_to_invoice(order_id)
        if invoice_id is not None:
            print(f"   ✅ Linked to invoice #{invoice_id}")
        else:
            print(f"   ⏭️  No link made (unknown order, already linked or no matching invoice)")

    print(f"\n💸 Booking channel fees...")
    result = matcher.sync_fees_to_expenses(None if all_fees else order_id)
    print_batch_result("Fees synced", result)


def main():
    parser = argparse.ArgumentParser(description='Sync approved bank transactions to expenses')
    parser.add_argument('--id', type=int, help='Sync a single transaction')
    parser.add_argument('--order', type=int, help='Match a channel order to an invoice and book its fees')
    parser.add_argument('--fees', action='store_true', help='Book every unlinked channel fee')
    args = parser.parse_args()

    configure_logging()

    print("=" * 80)
    print("🔄 EXPENSE SYNC")
    print("=" * 80)

    try:
        conn = get_db_connection()
    except Exception as e:
        print(f"❌ Database connection failed: {e}")
        sys.exit(1)

    store = PostgresStore(conn)
    orchestrator = SyncOrchestrator(store)
    failed = False

    try:
        if args.id is not None:
            expense_id = orchestrator.sync_transaction_to_expense(args.id)
            if expense_id is not None:
                print(f"✅ Transaction #{args.id} synced to expense #{expense_id}")
            else:
                print(f"❌ Transaction #{args.id} not synced (not approved, or already synced)")
                failed = True
        elif args.order is None and not args.fees:
            result = orchestrator.sync_approved_transactions()
            print_batch_result("Synced", result)
            failed = result.failed > 0

        if args.order is not None or args.fees:
            sync_channel(store, args.order, args.fees)

    except StoreError as e:
        print(f"\n❌ Sync failed: {e}")
        sys.exit(1)
    finally:
        conn.close()

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
