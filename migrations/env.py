"""Alembic environment configuration for the API guard.

Runs synchronous SQLite migrations using raw SQL (no SQLAlchemy models).
The database URL is set by apiguard.database.run_migrations.
"""
from alembic import context
from sqlalchemy import create_engine

config = context.config

url = config.get_main_option("sqlalchemy.url")


def run_migrations_online() -> None:
    connectable = create_engine(url)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=None)
        with context.begin_transaction():
            context.run_migrations()


run_migrations_online()
