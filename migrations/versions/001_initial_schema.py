"""Initial schema: API keys and the request ledger.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS api_keys (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            key             TEXT UNIQUE NOT NULL,
            level           INTEGER NOT NULL DEFAULT 0,
            ignore_limits   INTEGER NOT NULL DEFAULT 0,
            created_at      INTEGER
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS api_logs (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            api_key_id  INTEGER REFERENCES api_keys(id) ON DELETE SET NULL,
            route       TEXT NOT NULL,
            method      TEXT NOT NULL,
            params      TEXT,
            ip_address  TEXT,
            created_at  REAL NOT NULL
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_api_logs_route ON api_logs(route, method, created_at)")
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_api_logs_key_route ON api_logs(api_key_id, route, method, created_at)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS api_logs")
    op.execute("DROP TABLE IF EXISTS api_keys")
