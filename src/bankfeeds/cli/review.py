#!/usr/bin/env python3
"""
Transaction review CLI

Interactive queue for approving or rejecting pending bank transactions.
"""
import argparse
import sys
from typing import List

from bankfeeds.config import configure_logging
from bankfeeds.core.sync_orchestrator import SyncOrchestrator
from bankfeeds.models import BankTransaction, MatchType, TransactionRule, TransactionStatus
from bankfeeds.store.base import StoreError
from bankfeeds.store.postgres import PostgresStore
from bankfeeds.utils.db_connection import describe_target, get_db_connection


def display_transaction(txn: BankTransaction, index: int, total: int):
    """Display transaction details"""
    print("\n" + "=" * 80)
    print(f"Transaction {index}/{total}")
    print("=" * 80)

    print(f"Merchant:     {txn.display_name}")
    if txn.merchant_name and txn.name != txn.merchant_name:
        print(f"Description:  {txn.name[:60]}")
    direction = "out" if txn.amount < 0 else "in"
    print(f"Amount:       ${abs(txn.amount):.2f} ({direction})")
    print(f"Date:         {txn.date}")
    if txn.pending:
        print(f"              ⏳ still pending at the bank")

    if txn.suggested_category:
        confidence = txn.confidence_score or 0.0
        print(f"Suggested:    {txn.suggested_category} ({confidence:.0%})")
    else:
        print(f"Suggested:    - (run bankfeeds-categorize)")


def display_duplicates(orchestrator: SyncOrchestrator, txn: BankTransaction):
    """Show expenses that may already record this transaction"""
    expense_ids = orchestrator.find_duplicates(txn.id)
    if not expense_ids:
        return

    print(f"\n⚠️  Possible duplicates ({len(expense_ids)}):")
    for expense_id in sorted(expense_ids):
        expense = orchestrator.store.get_expense(expense_id)
        if expense is None:
            continue
        print(f"   • #{expense.id} {expense.date} ${expense.amount:.2f} "
              f"{expense.description[:40]} [{expense.category}]")


def create_rule(store: PostgresStore, merchant: str, category: str):
    """Create a contains-rule for future transactions from this merchant"""
    existing = [
        r for r in store.list_rules(active_only=False)
        if r.merchant_pattern.upper() == merchant.upper()
        and r.match_type == MatchType.CONTAINS
    ]
    if existing:
        print(f"   ℹ️  Rule already exists for this merchant")
        return

    store.insert_rule(TransactionRule(
        id=None,
        merchant_pattern=merchant,
        category=category,
        match_type=MatchType.CONTAINS,
        priority=10,
        rule_name='Created via review tool',
    ))
    print(f"   ✅ Created rule: {merchant} → {category}")


def main():
    """Main review function"""
    parser = argparse.ArgumentParser(description='Review pending bank transactions')
    parser.add_argument('--reviewer', required=True, help='Reviewer identity recorded on each decision')
    parser.add_argument('--limit', type=int, help='Review at most N transactions')
    parser.add_argument('--sync', action='store_true', help='Sync each approval to an expense right away')
    args = parser.parse_args()

    configure_logging()

    print("=" * 80)
    print("📝 TRANSACTION REVIEW")
    print("=" * 80)
    print(f"Reviewer: {args.reviewer}")

    # Connect to database
    try:
        conn = get_db_connection()
        print(f"✅ Connected to {describe_target()}")
    except Exception as e:
        print(f"❌ Database connection failed: {e}")
        sys.exit(1)

    store = PostgresStore(conn)
    orchestrator = SyncOrchestrator(store)

    try:
        print("\n🔍 Finding pending transactions...")
        transactions: List[BankTransaction] = store.list_transactions(status=TransactionStatus.PENDING)
        if args.limit:
            transactions = transactions[:args.limit]

        if not transactions:
            print("\n🎉 Nothing to review!")
            return

        print(f"✅ Found {len(transactions)} transactions")

        approved = 0
        rejected = 0
        skipped = 0

        for i, txn in enumerate(transactions, 1):
            display_transaction(txn, i, len(transactions))
            display_duplicates(orchestrator, txn)

            print("\n⚙️  Options:")
            if txn.suggested_category:
                print(f"   1. Approve as '{txn.suggested_category}'")
            print("   2. Approve with another category")
            print("   3. Reject")
            print("   4. Skip to next")
            print("   5. Quit")

            action = input("\nChoose action (1-5): ").strip().lower()

            if action in ('5', 'q'):
                break

            if action in ('4', 's'):
                skipped += 1
                continue

            if action == '3':
                if orchestrator.reject_transaction(txn.id, args.reviewer):
                    print("   🚫 Rejected")
                    rejected += 1
                else:
                    print("   ❌ Could not reject (already reviewed?)")
                continue

            if action == '1' and txn.suggested_category:
                category = txn.suggested_category
            elif action == '2':
                category = input("Category: ").strip()
                if not category:
                    print("❌ Empty category, skipping...")
                    skipped += 1
                    continue
            else:
                print("❌ Invalid choice, skipping...")
                skipped += 1
                continue

            if not orchestrator.approve_transaction(txn.id, category, args.reviewer):
                print("   ❌ Could not approve (already reviewed?)")
                continue

            print(f"   ✅ Approved as {category}")
            approved += 1

            if action == '2':
                create_rule_choice = input("Create rule for future transactions? (y/n): ").strip().lower()
                if create_rule_choice == 'y':
                    create_rule(store, txn.display_name, category)

            if args.sync:
                expense_id = orchestrator.sync_transaction_to_expense(txn.id)
                if expense_id is not None:
                    print(f"   💾 Synced to expense #{expense_id}")
                else:
                    print(f"   ❌ Sync failed, transaction stays approved")

        # Summary
        print("\n" + "=" * 80)
        print("📊 REVIEW SUMMARY")
        print("=" * 80)
        print(f"✅ Approved: {approved}")
        print(f"🚫 Rejected: {rejected}")
        print(f"⏭️  Skipped: {skipped}")

        remaining = store.list_transactions(status=TransactionStatus.PENDING)
        if remaining:
            print(f"⚠️  Still pending: {len(remaining)}")
        else:
            print(f"🎉 Review queue is empty!")

        print("=" * 80)

    except StoreError as e:
        print(f"\n❌ Review failed: {e}")
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
