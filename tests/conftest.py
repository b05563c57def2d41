"""Shared fixtures for the API guard test suite.

Engine tests run against in-memory stores and a fake clock; store tests run
against a real on-disk SQLite file migrated by Alembic.
"""
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from fastapi import APIRouter, Depends, FastAPI

from apiguard import database as db
from apiguard.config import Settings
from apiguard.dependencies import require_api_key
from apiguard.engine import GuardEngine
from apiguard.models import ApiKey
from apiguard.policies import PolicyRegistry
from apiguard.responses import install_error_handlers
from apiguard.stores import InMemoryKeyStore, InMemoryRequestLedger

T0 = 1_700_000_000.0


class FakeClock:
    """Controllable replacement for time.time()."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def guard_settings():
    return Settings(
        key_header_name="X-Authorization",
        key_parameter_name="key",
        logging_enabled=True,
        default_limit_window=timedelta(hours=1),
        store_timeout_seconds=1.0,
        db_path=":memory:",
        policy_file=None,
    )


@pytest.fixture
def basic_key():
    return ApiKey(id=1, key="basic-secret", level=1)


@pytest.fixture
def admin_key():
    return ApiKey(id=2, key="admin-secret", level=10)


@pytest.fixture
def unlimited_key():
    return ApiKey(id=3, key="unlimited-secret", level=1, ignore_limits=True)


@pytest.fixture
def key_store(basic_key, admin_key, unlimited_key):
    return InMemoryKeyStore([basic_key, admin_key, unlimited_key])


@pytest.fixture
def ledger():
    return InMemoryRequestLedger()


@pytest.fixture
def make_engine(key_store, ledger, guard_settings, clock):
    """Build an engine over the in-memory stores for a set of declared policies."""

    def _make(declared=None, settings=None, keys=None, log=None):
        settings = settings or guard_settings
        registry = PolicyRegistry.from_mapping(declared or {}, settings.default_limit_window)
        return GuardEngine(
            keys=keys or key_store,
            ledger=log or ledger,
            policies=registry,
            settings=settings,
            clock=clock,
        )

    return _make


@pytest_asyncio.fixture
async def test_db(tmp_path):
    """Create a temp DB file, run Alembic migrations, open an async connection, yield, close.

    Uses a real on-disk SQLite file (not :memory:) to match production
    behavior with WAL mode and foreign keys.
    """
    db_file = str(tmp_path / "test.db")

    # Run real Alembic migrations — verifies migrations work on every test
    db.run_migrations(db_file)

    conn = await db.connect(db_file)
    yield conn

    await conn.close()


async def insert_key(conn, key: str, level: int = 0, ignore_limits: bool = False) -> int:
    cur = await conn.execute(
        "INSERT INTO api_keys (key, level, ignore_limits, created_at) VALUES (?, ?, ?, ?)",
        (key, level, int(ignore_limits), int(T0)),
    )
    await conn.commit()
    return cur.lastrowid


POLICIES = {
    "open_status": {"keyAuthentication": False},
    "list_books": {"limits": {"key": {"limit": 2, "window": "1 minute"}}},
    "create_book": {"level": 5},
    "search": {"limits": {"method": {"limit": 2, "window": "1 minute"}}},
}


@pytest.fixture
def guarded_app(make_engine):
    """A FastAPI app with a few guarded routes, wired like main.py.

    The engine is placed on app.state directly; no lifespan runs.
    """
    app = FastAPI()
    install_error_handlers(app)
    app.state.api_guard = make_engine(POLICIES)

    router = APIRouter(dependencies=[Depends(require_api_key)])

    @router.get("/status")
    async def open_status():
        return {"ok": True}

    @router.get("/books")
    async def list_books():
        return {"books": []}

    @router.post("/books")
    async def create_book():
        return {"created": True}

    @router.get("/search")
    async def search():
        return {"results": []}

    app.include_router(router)
    return app


@pytest_asyncio.fixture
async def client(guarded_app):
    """httpx.AsyncClient using ASGITransport — bypasses lifespan."""
    transport = httpx.ASGITransport(app=guarded_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
