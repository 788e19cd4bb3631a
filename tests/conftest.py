"""
Shared pytest fixtures for the chain-state store.

IMPORTANT: CHAINSTATE_LOG_TO_FILE must be set BEFORE any `src/*` module is
imported, because loggers are created at import time and would otherwise
open rotating log files under ./logs.
"""

import os

# --- env must be set before any src import ---
os.environ.setdefault("CHAINSTATE_LOG_TO_FILE", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import create_test_database_manager, DatabaseManager
from db.models import Block
from repositories.accounts_repo import AccountsRepository
from repositories.delegates_repo import DelegatesRepository

from factories import make_account, GENESIS_BLOCK_ID


# ============================================================
# Database fixtures
# ============================================================


@pytest.fixture
async def db_manager() -> DatabaseManager:
    """
    Function-scoped in-memory SQLite database.

    Every test gets a fresh schema, so no row cleanup is needed and the
    aiosqlite connection never outlives the test's event loop.
    """
    manager = create_test_database_manager()
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
async def db_session(db_manager: DatabaseManager) -> AsyncSession:
    """Database session committed when the test finishes."""
    async with db_manager.session() as session:
        yield session


# ============================================================
# Repository fixtures
# ============================================================


@pytest.fixture
def accounts_repo(db_session: AsyncSession) -> AccountsRepository:
    return AccountsRepository(db_session)


@pytest.fixture
def delegates_repo(db_session: AsyncSession) -> DelegatesRepository:
    return DelegatesRepository(db_session)


# ============================================================
# Seed data
# ============================================================


@pytest.fixture
async def genesis_block(db_session: AsyncSession) -> Block:
    block = Block(id=GENESIS_BLOCK_ID, height=1, previous_block=None, timestamp=0)
    db_session.add(block)
    await db_session.flush()
    return block


@pytest.fixture
async def seeded_accounts(accounts_repo: AccountsRepository, genesis_block: Block) -> list:
    """Three accounts referencing the genesis block; one of them a delegate."""
    accounts = [
        make_account(),
        make_account(is_delegate=True, u_is_delegate=True, vote=5000),
        make_account(second_public_key=make_account()["public_key"], second_signature=True,
                     u_second_signature=True),
    ]
    for account in accounts:
        await accounts_repo.insert(account)
    return accounts
