#!/usr/bin/env python3
"""
Database initialization script

Creates the reconciliation schema and optionally seeds transaction rules.
"""
import argparse
import json
import sys
from pathlib import Path

import psycopg2

from bankfeeds.config import configure_logging
from bankfeeds.models import MatchType, TransactionRule
from bankfeeds.store.base import StoreError
from bankfeeds.store.postgres import PostgresStore
from bankfeeds.utils.db_connection import describe_target, get_db_connection


SCHEMA_FILE = Path(__file__).parent.parent / "db" / "schema.sql"


def apply_schema(conn, schema_file: Path = SCHEMA_FILE):
    """Run the schema DDL (idempotent: every statement is IF NOT EXISTS)"""
    print(f"\n📄 Applying schema {schema_file.name}")

    sql = schema_file.read_text()
    try:
        with conn.cursor() as cursor:
            cursor.execute(sql)
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        print(f"   ❌ Schema failed: {e.pgerror or e}")
        raise
    print(f"   ✅ Tables ready")


def parse_rules_file(rules_file: Path) -> list:
    """
    Read rules from JSON

    Expected shape: a list of objects with merchant_pattern and category,
    plus optional match_type, priority, auto_approve and rule_name.
    """
    with open(rules_file, 'r') as f:
        raw_rules = json.load(f)

    if isinstance(raw_rules, dict):
        raw_rules = raw_rules.get('rules', [])

    rules = []
    for raw in raw_rules:
        rules.append(TransactionRule(
            id=None,
            merchant_pattern=raw['merchant_pattern'],
            category=raw['category'],
            match_type=MatchType(raw.get('match_type', 'contains')),
            priority=int(raw.get('priority', 0)),
            auto_approve=bool(raw.get('auto_approve', False)),
            rule_name=raw.get('rule_name'),
        ))
    return rules


def load_rules(store: PostgresStore, rules_file: Path):
    """Insert rules from a JSON file"""
    print(f"\n📚 Loading rules from {rules_file}")

    rules = parse_rules_file(rules_file)
    with store.atomic():
        for rule in rules:
            store.insert_rule(rule)

    print(f"   ✅ Loaded {len(rules)} rules")


def print_summary(conn):
    """Print database summary"""
    cursor = conn.cursor()

    print("\n" + "=" * 80)
    print("📊 DATABASE SUMMARY")
    print("=" * 80)

    cursor.execute("SELECT COUNT(*) FROM bank_accounts WHERE is_active = TRUE")
    print(f"Active bank accounts: {cursor.fetchone()[0]}")

    cursor.execute("SELECT COUNT(*), COUNT(*) FILTER (WHERE auto_approve) FROM transaction_rules")
    total_rules, auto_rules = cursor.fetchone()
    print(f"Transaction rules: {total_rules} ({auto_rules} auto-approve)")

    cursor.execute("SELECT status, COUNT(*) FROM bank_transactions GROUP BY status ORDER BY status")
    rows = cursor.fetchall()
    print(f"\nBank transactions:")
    for status, count in rows:
        print(f"  • {status}: {count}")
    if not rows:
        print("  • none yet")

    cursor.execute("SELECT COUNT(*) FROM expenses")
    print(f"\nExpenses: {cursor.fetchone()[0]}")

    print("=" * 80)

    cursor.close()


def main():
    """Main initialization function"""
    parser = argparse.ArgumentParser(description='Create the bank feed reconciliation schema')
    parser.add_argument('--rules', help='JSON file of transaction rules to load')
    args = parser.parse_args()

    configure_logging()

    print("=" * 80)
    print("🚀 BANK FEEDS DATABASE INITIALIZATION")
    print("=" * 80)

    rules_file = Path(args.rules) if args.rules else None
    if rules_file is not None and not rules_file.exists():
        print(f"\n❌ Rules file not found: {rules_file}")
        sys.exit(1)

    # Connect to database
    print(f"\n🔌 Connecting to {describe_target()}...")
    try:
        conn = get_db_connection()
        print("   ✅ Connected")
    except Exception as e:
        print(f"   ❌ Connection failed: {e}")
        print("\nCheck DB_HOST / DB_NAME / DB_USER in your .env")
        sys.exit(1)

    try:
        apply_schema(conn)

        if rules_file is not None:
            load_rules(PostgresStore(conn), rules_file)

        print_summary(conn)

        print("\n✅ Database initialization complete!")
        print("\nNext steps:")
        print("  1. Import a feed: bankfeeds-import /path/to/feed.json --categorize")
        print("  2. Review suggestions: bankfeeds-review --reviewer you@example.com")

    except KeyError as e:
        print(f"\n❌ Rule is missing field {e}")
        sys.exit(1)
    except (StoreError, ValueError, psycopg2.Error) as e:
        print(f"\n❌ Initialization failed: {e}")
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
