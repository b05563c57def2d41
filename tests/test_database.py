"""Tests for the SQLite key store and request ledger (real migrated DB)."""
import pytest

from apiguard.errors import StoreUnavailableError
from apiguard.models import ApiKey, ApiLogEntry, LogFilter
from apiguard.stores import SQLiteKeyStore, SQLiteRequestLedger
from conftest import T0, insert_key


def entry(key_id, at, route="list_books", method="GET", **extra):
    return ApiLogEntry(api_key_id=key_id, route=route, http_method=method, created_at=at, **extra)


# ---------------------------------------------------------------------------
# Key store
# ---------------------------------------------------------------------------

async def test_find_by_key(test_db):
    key_id = await insert_key(test_db, "s3cret", level=4, ignore_limits=True)
    found = await SQLiteKeyStore(test_db).find_by_key("s3cret")
    assert found == ApiKey(id=key_id, key="s3cret", level=4, ignore_limits=True)


async def test_find_by_key_missing_returns_none(test_db):
    await insert_key(test_db, "s3cret")
    assert await SQLiteKeyStore(test_db).find_by_key("other") is None


async def test_find_by_key_is_exact_match(test_db):
    await insert_key(test_db, "s3cret")
    store = SQLiteKeyStore(test_db)
    for near_miss in ("s3cre", "S3CRET", "s3cret%", "%"):
        assert await store.find_by_key(near_miss) is None


async def test_key_store_failure_raises_store_unavailable(test_db):
    await test_db.execute("DROP TABLE api_logs")
    await test_db.execute("DROP TABLE api_keys")
    await test_db.commit()
    with pytest.raises(StoreUnavailableError):
        await SQLiteKeyStore(test_db).find_by_key("s3cret")


# ---------------------------------------------------------------------------
# Request ledger
# ---------------------------------------------------------------------------

async def test_append_inserts_row(test_db):
    key_id = await insert_key(test_db, "s3cret")
    await SQLiteRequestLedger(test_db).append(
        entry(key_id, T0, params="page=2", ip_address="192.168.1.100")
    )
    async with test_db.execute("SELECT * FROM api_logs WHERE api_key_id = ?", (key_id,)) as cur:
        row = await cur.fetchone()
    assert row is not None
    assert row["route"] == "list_books"
    assert row["method"] == "GET"
    assert row["params"] == "page=2"
    assert row["ip_address"] == "192.168.1.100"
    assert row["created_at"] == T0


async def test_count_since_bounds_are_inclusive(test_db):
    key_id = await insert_key(test_db, "s3cret")
    ledger = SQLiteRequestLedger(test_db)
    for at in (T0 - 61, T0 - 60, T0 - 30, T0, T0 + 1):
        await ledger.append(entry(key_id, at))
    count = await ledger.count_since(
        LogFilter(route="list_books", http_method="GET", start=T0 - 60, end=T0, api_key_id=key_id)
    )
    assert count == 3


async def test_count_since_filters_by_key(test_db):
    a = await insert_key(test_db, "key-a")
    b = await insert_key(test_db, "key-b")
    ledger = SQLiteRequestLedger(test_db)
    await ledger.append(entry(a, T0))
    await ledger.append(entry(a, T0))
    await ledger.append(entry(b, T0))

    def window(key_id=None):
        return LogFilter(route="list_books", http_method="GET", start=T0 - 10, end=T0, api_key_id=key_id)

    assert await ledger.count_since(window(a)) == 2
    assert await ledger.count_since(window(b)) == 1
    # No key filter aggregates across all keys
    assert await ledger.count_since(window()) == 3


async def test_count_since_filters_by_route_and_method(test_db):
    key_id = await insert_key(test_db, "s3cret")
    ledger = SQLiteRequestLedger(test_db)
    await ledger.append(entry(key_id, T0, route="list_books", method="GET"))
    await ledger.append(entry(key_id, T0, route="list_books", method="POST"))
    await ledger.append(entry(key_id, T0, route="search", method="GET"))
    count = await ledger.count_since(
        LogFilter(route="list_books", http_method="GET", start=T0 - 10, end=T0)
    )
    assert count == 1


async def test_ledger_failure_raises_store_unavailable(test_db):
    await test_db.execute("DROP TABLE api_logs")
    await test_db.commit()
    ledger = SQLiteRequestLedger(test_db)
    with pytest.raises(StoreUnavailableError):
        await ledger.count_since(LogFilter(route="r", http_method="GET", start=0, end=1))
    with pytest.raises(StoreUnavailableError):
        await ledger.append(entry(None, T0))


async def test_deleting_key_keeps_ledger_rows(test_db):
    key_id = await insert_key(test_db, "s3cret")
    await SQLiteRequestLedger(test_db).append(entry(key_id, T0))
    await test_db.execute("DELETE FROM api_keys WHERE id = ?", (key_id,))
    await test_db.commit()
    async with test_db.execute("SELECT api_key_id FROM api_logs") as cur:
        rows = await cur.fetchall()
    assert len(rows) == 1
    assert rows[0]["api_key_id"] is None
