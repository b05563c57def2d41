"""SQLite connection lifecycle and migrations for the key table and request ledger.

Note: the service shares a single aiosqlite connection. Ledger counts and
appends are each one statement, so they stay individually atomic while
requests interleave freely between them.
"""
import asyncio
import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

_db: aiosqlite.Connection | None = None
_lock = asyncio.Lock()


def run_migrations(db_path: str) -> None:
    """Run Alembic migrations synchronously (called before the async event loop)."""
    from alembic.config import Config
    from alembic import command

    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    command.upgrade(cfg, "head")


async def connect(db_path: str) -> aiosqlite.Connection:
    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")
    return conn


async def get_db(db_path: str) -> aiosqlite.Connection:
    global _db
    if _db is None:
        async with _lock:
            if _db is None:
                _db = await connect(db_path)
    return _db


async def close_db() -> None:
    global _db
    if _db is not None:
        try:
            await _db.close()
        except Exception as exc:
            logger.warning("Error closing database: %s", exc)
        _db = None
