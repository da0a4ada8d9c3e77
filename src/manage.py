"""Marketplace management CLI.

Usage:
    python src/manage.py setup-db              # Create all tables
    python src/manage.py drop-db               # Drop all tables
    python src/manage.py expire-transactions   # Fail initiated transactions past their TTL
"""

import argparse
import sys


def _domain():
    from marketplace.domain import marketplace

    marketplace.init()
    return marketplace


def setup_database():
    from marketplace.utils.db import setup_db

    print("Creating marketplace database schema...")
    setup_db(_domain())
    print("Done.")


def drop_database():
    from marketplace.utils.db import drop_db

    print("Dropping marketplace database schema...")
    drop_db(_domain())
    print("Done.")


def expire_transactions(older_than_minutes):
    from marketplace.payment.services import expire_stale_transactions

    with _domain().domain_context():
        expired = expire_stale_transactions(older_than_minutes=older_than_minutes)
    print(f"Expired {expired} stale transaction(s).")


def main():
    parser = argparse.ArgumentParser(description="Marketplace management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    expire_parser = subparsers.add_parser("expire-transactions", help="Fail stale initiated transactions")
    expire_parser.add_argument("--older-than-minutes", type=int, default=15)

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "expire-transactions":
        expire_transactions(args.older_than_minutes)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
