"""
Tests for the forward-only SQL migration runner.
"""

import pytest
from sqlalchemy import text

from campaign_builder.database import create_engine_for, list_migration_files, run_migrations


@pytest.fixture
async def engine():
    eng = create_engine_for("sqlite+aiosqlite:///:memory:")
    yield eng
    await eng.dispose()


@pytest.mark.anyio
async def test_migrations_apply_in_order_and_are_idempotent(engine):
    first = await run_migrations(engine)
    assert first == [p.name for p in list_migration_files()]
    assert first == sorted(first)

    second = await run_migrations(engine)
    assert second == []

    async with engine.connect() as conn:
        rows = (await conn.execute(text("SELECT filename FROM migrations ORDER BY filename"))).all()
    assert [r[0] for r in rows] == first


@pytest.mark.anyio
async def test_schema_has_core_tables(engine):
    await run_migrations(engine)
    async with engine.connect() as conn:
        rows = (await conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))).all()
    tables = {r[0] for r in rows}
    for expected in (
        "campaigns", "ad_groups", "ads", "negative_keywords", "search_terms", "performance_data",
        "asset_performance", "recommendations", "automation_rules", "automation_history",
        "imports", "snapshots", "sheets_config",
    ):
        assert expected in tables


@pytest.mark.anyio
async def test_new_migration_file_is_picked_up(engine, tmp_path):
    (tmp_path / "000_base.sql").write_text("CREATE TABLE widgets (id TEXT PRIMARY KEY);\n")
    assert await run_migrations(engine, tmp_path) == ["000_base.sql"]

    (tmp_path / "001_add_column.sql").write_text(
        "-- add a label\nALTER TABLE widgets ADD COLUMN label TEXT;\n"
    )
    assert await run_migrations(engine, tmp_path) == ["001_add_column.sql"]


@pytest.mark.anyio
async def test_failed_migration_is_not_recorded(engine, tmp_path):
    (tmp_path / "000_broken.sql").write_text(
        "CREATE TABLE ok_table (id TEXT);\nTHIS IS NOT SQL;\n"
    )
    with pytest.raises(Exception):
        await run_migrations(engine, tmp_path)

    async with engine.connect() as conn:
        recorded = (await conn.execute(text("SELECT COUNT(*) FROM migrations"))).scalar()
        created = (await conn.execute(
            text("SELECT COUNT(*) FROM sqlite_master WHERE name = 'ok_table'")
        )).scalar()
    assert recorded == 0
    assert created == 0
