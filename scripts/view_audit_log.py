#!/usr/bin/env python3
"""
Utility script to view a user's audit log.

Usage:
    python scripts/view_audit_log.py                       # Latest entries for the default user
    python scripts/view_audit_log.py --tail 10             # Last 10 entries
    python scripts/view_audit_log.py --grep "Purchase"     # Filter by action or details
    python scripts/view_audit_log.py --user alice          # Another user
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from smart_shopper.config import get_config_manager
from smart_shopper.database.db_manager import create_database_manager


def view_audit_log(
    db_path: str,
    user_id: str,
    tail: Optional[int] = None,
    grep: Optional[str] = None,
    limit: int = 1000,
) -> None:
    """
    Print audit entries, oldest first.

    Args:
        db_path: Path to database file
        user_id: Owner of the audit log
        tail: Show only the last N entries
        grep: Filter entries containing this string
        limit: Maximum entries read from the store
    """
    if not Path(db_path).exists():
        print(f"Error: Database not found: {db_path}", file=sys.stderr)
        sys.exit(1)

    db_manager = create_database_manager(db_path)
    lines = [entry.to_readable_string() for entry in reversed(db_manager.get_audit_log(user_id, limit))]

    if grep:
        lines = [line for line in lines if grep in line]

    if tail:
        lines = lines[-tail:]

    for line in lines:
        print(line)


def main():
    """Main entry point."""
    config = get_config_manager()

    parser = argparse.ArgumentParser(
        description="View the Smart Shopper audit log",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # View all entries
  %(prog)s --tail 20                    # View last 20 entries
  %(prog)s --grep "Spend Cap"           # Show only blocked suggestions
  %(prog)s --tail 5 --grep "Purchase"   # Combine filters
        """
    )

    parser.add_argument(
        '--db',
        default=config.get("database.path", "data/smart_shopper.db"),
        help='Path to database file'
    )

    parser.add_argument(
        '--user',
        default=config.get("agent.default_user_id", "local-user"),
        help='User id whose audit log to show'
    )

    parser.add_argument(
        '--tail',
        type=int,
        metavar='N',
        help='Show only last N entries'
    )

    parser.add_argument(
        '--grep',
        metavar='PATTERN',
        help='Filter entries containing PATTERN'
    )

    args = parser.parse_args()

    view_audit_log(
        db_path=args.db,
        user_id=args.user,
        tail=args.tail,
        grep=args.grep,
    )


if __name__ == '__main__':
    main()
