"""
Database configuration, session management and schema migrations.
Uses SQLite via aiosqlite with the SQLAlchemy 2 async engine.

The engine is built explicitly (``create_engine_for``) and handed to the app
in ``create_app``; request handlers receive sessions through ``get_db``.
"""

import logging
from pathlib import Path
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


class Base(DeclarativeBase):
    pass


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine for ``database_url``.
    In-memory databases share a single connection so every session sees the same schema.
    """
    kwargs = {"echo": echo}
    if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:"):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}

    engine = create_async_engine(database_url, **kwargs)
    _install_sqlite_listeners(engine)
    return engine


def _install_sqlite_listeners(engine: AsyncEngine) -> None:
    """Enable foreign keys and let SQLAlchemy own BEGIN so SAVEPOINTs behave."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency that provides a database session with auto-commit/rollback."""
    async with request.app.state.sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Migrations ────────────────────────────────────────────────────────

def _split_statements(sql: str) -> list[str]:
    """Strip ``--`` comments and split a migration file into statements."""
    lines = []
    for line in sql.splitlines():
        idx = line.find("--")
        if idx != -1:
            line = line[:idx]
        lines.append(line)
    cleaned = "\n".join(lines)
    return [stmt.strip() for stmt in cleaned.split(";") if stmt.strip()]


def list_migration_files(directory: Path = MIGRATIONS_DIR) -> list[Path]:
    return sorted(directory.glob("*.sql"), key=lambda p: p.name)


async def run_migrations(engine: AsyncEngine, directory: Path = MIGRATIONS_DIR) -> list[str]:
    """
    Apply forward-only ``.sql`` migrations in lexicographic order.
    Each file runs in its own transaction together with its row in ``migrations``.
    Returns the filenames applied by this call.
    """
    async with engine.begin() as conn:
        await conn.execute(text(
            "CREATE TABLE IF NOT EXISTS migrations ("
            " filename TEXT PRIMARY KEY,"
            " applied_at TEXT NOT NULL DEFAULT (datetime('now')))"
        ))
        result = await conn.execute(text("SELECT filename FROM migrations"))
        applied = {row[0] for row in result}

    newly_applied = []
    for path in list_migration_files(directory):
        if path.name in applied:
            continue
        statements = _split_statements(path.read_text(encoding="utf-8"))
        async with engine.begin() as conn:
            for stmt in statements:
                await conn.exec_driver_sql(stmt)
            await conn.execute(
                text("INSERT INTO migrations (filename) VALUES (:filename)"),
                {"filename": path.name},
            )
        newly_applied.append(path.name)
        logger.info(f"Applied migration {path.name} ({len(statements)} statements)")

    if not newly_applied:
        logger.info("Database schema up to date.")
    return newly_applied


async def init_db(engine: AsyncEngine) -> None:
    """Bring the schema up to date. Safe to run on every startup."""
    import campaign_builder.models  # noqa: F401

    applied = await run_migrations(engine)
    logger.info(f"Database initialized; {len(applied)} new migration(s), "
                f"{len(Base.metadata.tables)} mapped tables.")


async def check_db_connection(engine: AsyncEngine) -> bool:
    """Test database connectivity."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
