#!/usr/bin/env python3
"""
账户内存表维护脚本

Usage:
    python scripts/reconcile_accounts.py reconcile
    python scripts/reconcile_accounts.py orphans
    python scripts/reconcile_accounts.py reset --yes
    python scripts/reconcile_accounts.py reconcile --database-url sqlite+aiosqlite:///data/other.db
"""

import sys
import asyncio
import argparse
from pathlib import Path

# 注入 src 路径 + load_dotenv
SRC_DIR = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(SRC_DIR))

from dotenv import load_dotenv
load_dotenv()


async def main(command: str, database_url: str) -> None:
    from db.database import DatabaseManager
    from repositories.accounts_repo import AccountsRepository

    db = DatabaseManager(database_url)
    await db.initialize()

    try:
        async with db.session() as session:
            accounts = AccountsRepository(session)

            if command == "reconcile":
                synced = await accounts.update_mem_accounts()
                print(f"Synchronized unconfirmed state for {synced} account(s)")

            elif command == "orphans":
                orphans = await accounts.get_orphaned_mem_accounts()
                if not orphans:
                    print("No orphaned accounts found")
                for orphan in orphans:
                    print(f"{orphan['address']}\tblock_id={orphan['block_id']}")

            elif command == "reset":
                before = await accounts.count_mem_accounts()
                await accounts.reset_mem_tables()
                print(f"Memory tables reset ({before} account(s) removed)")

    finally:
        await db.close()


if __name__ == "__main__":
    from db.config import config

    parser = argparse.ArgumentParser(description="Maintain account memory tables")
    parser.add_argument(
        "command",
        choices=["reconcile", "orphans", "reset"],
        help="reconcile: copy unconfirmed state onto confirmed columns; "
             "orphans: list accounts referencing unknown blocks; "
             "reset: empty account, round and dependency tables",
    )
    parser.add_argument(
        "--database-url",
        default=config.DATABASE_URL,
        help="SQLAlchemy async database URL (default: CHAINSTATE_DATABASE_URL)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm destructive commands",
    )

    args = parser.parse_args()

    if args.command == "reset" and not args.yes:
        print("Refusing to reset memory tables without --yes")
        sys.exit(1)

    asyncio.run(main(args.command, args.database_url))
