"""API Guard — FastAPI entry point."""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from apiguard import database as db
from apiguard.config import settings
from apiguard.dependencies import require_api_key
from apiguard.engine import GuardEngine
from apiguard.models import ApiKey
from apiguard.policies import PolicyRegistry
from apiguard.responses import install_error_handlers
from apiguard.stores import SQLiteKeyStore, SQLiteRequestLedger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def load_policies() -> PolicyRegistry:
    if not settings.policy_file:
        logger.info("No policy file configured; every guarded route requires a key and has no limits")
        return PolicyRegistry()
    registry = PolicyRegistry.from_file(settings.policy_file, settings.default_limit_window)
    logger.info("Loaded %d route policies from %s", len(registry), settings.policy_file)
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        db_dir = os.path.dirname(settings.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        db.run_migrations(settings.db_path)
        conn = await db.get_db(settings.db_path)
        logger.info("Database ready at %s", settings.db_path)
    except Exception as exc:
        logger.critical("Failed to initialize database at %s: %s", settings.db_path, exc)
        raise RuntimeError(f"Database initialization failed: {exc}") from exc

    app.state.api_guard = GuardEngine(
        keys=SQLiteKeyStore(conn),
        ledger=SQLiteRequestLedger(conn),
        policies=load_policies(),
        settings=settings,
    )

    yield

    try:
        await db.close_db()
    except Exception:
        logger.exception("Error closing database")


app = FastAPI(title="API Guard", lifespan=lifespan)
install_error_handlers(app)

api = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])


@api.get("/whoami")
async def whoami(request: Request) -> dict:
    api_key: ApiKey | None = request.state.api_key
    if api_key is None:
        return {"authenticated": False}
    return {"authenticated": True, "id": api_key.id, "level": api_key.level}


app.include_router(api)


@app.get("/health")
async def health():
    try:
        conn = await db.get_db(settings.db_path)
        await conn.execute("SELECT 1")
        db_ok = True
    except Exception:
        db_ok = False
    if db_ok:
        return {"status": "ok", "db": "accessible"}
    return JSONResponse(status_code=503, content={"status": "degraded", "db": "unavailable"})
