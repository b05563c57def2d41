"""Key store and request ledger.

The engine only talks to the ``KeyStore`` and ``RequestLedger`` protocols.
SQLite implementations back the running service; the in-memory ones are for
tests and embedding. Each call is one statement against the store; there is
no lock spanning a ledger count and the following append, so concurrent
requests under one key may overshoot a limit by up to (concurrency - 1).
"""
import logging
from typing import Iterable, Protocol

import aiosqlite

from apiguard.errors import StoreUnavailableError
from apiguard.models import ApiKey, ApiLogEntry, LogFilter

logger = logging.getLogger(__name__)


class KeyStore(Protocol):
    async def find_by_key(self, secret: str) -> ApiKey | None: ...


class RequestLedger(Protocol):
    async def count_since(self, query: LogFilter) -> int: ...

    async def append(self, entry: ApiLogEntry) -> None: ...


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

class SQLiteKeyStore:
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def find_by_key(self, secret: str) -> ApiKey | None:
        try:
            async with self._conn.execute(
                "SELECT id, key, level, ignore_limits FROM api_keys WHERE key = ?",
                (secret,),
            ) as cur:
                row = await cur.fetchone()
        except (aiosqlite.Error, ValueError) as exc:
            # aiosqlite raises ValueError once the connection is closed
            logger.exception("Key lookup failed")
            raise StoreUnavailableError("Key store unavailable") from exc
        if row is None:
            return None
        return ApiKey(
            id=row["id"],
            key=row["key"],
            level=row["level"],
            ignore_limits=bool(row["ignore_limits"]),
        )


class SQLiteRequestLedger:
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def count_since(self, query: LogFilter) -> int:
        sql = (
            "SELECT COUNT(*) AS cnt FROM api_logs"
            " WHERE route = ? AND method = ? AND created_at >= ? AND created_at <= ?"
        )
        args: list = [query.route, query.http_method, query.start, query.end]
        if query.api_key_id is not None:
            sql += " AND api_key_id = ?"
            args.append(query.api_key_id)
        try:
            async with self._conn.execute(sql, args) as cur:
                row = await cur.fetchone()
        except (aiosqlite.Error, ValueError) as exc:
            logger.exception("Ledger count failed for %s %s", query.http_method, query.route)
            raise StoreUnavailableError("Request ledger unavailable") from exc
        return row["cnt"]

    async def append(self, entry: ApiLogEntry) -> None:
        try:
            await self._conn.execute(
                """INSERT INTO api_logs
                   (api_key_id, route, method, params, ip_address, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (entry.api_key_id, entry.route, entry.http_method, entry.params,
                 entry.ip_address, entry.created_at),
            )
            await self._conn.commit()
        except (aiosqlite.Error, ValueError) as exc:
            logger.exception("Ledger append failed for %s %s", entry.http_method, entry.route)
            raise StoreUnavailableError("Request ledger unavailable") from exc


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryKeyStore:
    def __init__(self, keys: Iterable[ApiKey] = ()) -> None:
        self._keys: dict[str, ApiKey] = {k.key: k for k in keys}

    def add(self, key: ApiKey) -> None:
        self._keys[key.key] = key

    async def find_by_key(self, secret: str) -> ApiKey | None:
        return self._keys.get(secret)


class InMemoryRequestLedger:
    def __init__(self) -> None:
        self.entries: list[ApiLogEntry] = []

    async def count_since(self, query: LogFilter) -> int:
        return sum(
            1
            for e in self.entries
            if e.route == query.route
            and e.http_method == query.http_method
            and query.start <= e.created_at <= query.end
            and (query.api_key_id is None or e.api_key_id == query.api_key_id)
        )

    async def append(self, entry: ApiLogEntry) -> None:
        self.entries.append(entry)
