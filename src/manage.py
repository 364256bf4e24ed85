"""Cartline management CLI.

Database schema management and operational maintenance for the ordering
domain.

Usage:
    python src/manage.py setup-db                           # Create all tables
    python src/manage.py drop-db                            # Drop all tables
    python src/manage.py reconcile-pending --older-than 30  # Sweep stale pending orders
"""

import argparse
import json
import sys


def _ordering_domain():
    from ordering.domain import ordering

    ordering.init()
    return ordering


def setup_database():
    from ordering.utils.db import setup_db

    print("Initializing ordering domain...")
    domain = _ordering_domain()
    print("Creating ordering database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from ordering.utils.db import drop_db

    print("Initializing ordering domain...")
    domain = _ordering_domain()
    print("Dropping ordering database schema...")
    drop_db(domain)
    print("Done.")


def reconcile_pending(older_than_minutes: int):
    from ordering.order.reconciliation import reconcile_pending_orders

    domain = _ordering_domain()
    with domain.domain_context():
        summary = reconcile_pending_orders(older_than_minutes)
    print(json.dumps(summary, indent=2))


def main():
    parser = argparse.ArgumentParser(description="Cartline management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    reconcile_parser = subparsers.add_parser(
        "reconcile-pending",
        help="Re-check pending orders against the payment processor",
    )
    reconcile_parser.add_argument(
        "--older-than",
        type=int,
        default=30,
        dest="older_than",
        help="Only orders pending for at least this many minutes (default: 30)",
    )

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "reconcile-pending":
        reconcile_pending(args.older_than)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
