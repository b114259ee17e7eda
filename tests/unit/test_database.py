"""Tests for database module."""

import pytest
from pathlib import Path

import aiosqlite

from src.persistence.database import check_database_health, init_database


@pytest.mark.asyncio
async def test_init_database_creates_file(tmp_path):
    """Database initialization creates the database file."""
    db_path = tmp_path / "nested" / "test.db"

    assert not db_path.exists()

    await init_database(db_path)

    assert db_path.exists()


@pytest.mark.asyncio
async def test_init_database_creates_tables(tmp_path):
    """Database initialization creates all required tables."""
    db_path = tmp_path / "test.db"
    await init_database(db_path)

    async with aiosqlite.connect(db_path) as db:
        cursor = await db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        tables = [row[0] for row in await cursor.fetchall()]

    assert "profiles" in tables
    assert "sessions" in tables
    assert "messages" in tables


@pytest.mark.asyncio
async def test_init_database_is_idempotent(tmp_path):
    db_path = tmp_path / "test.db"
    await init_database(db_path)
    await init_database(db_path)

    health = await check_database_health(db_path)
    assert health["status"] == "healthy"


@pytest.mark.asyncio
async def test_check_database_health(tmp_path):
    """Health check returns status information."""
    db_path = tmp_path / "test.db"
    await init_database(db_path)

    health = await check_database_health(db_path)

    assert health["status"] == "healthy"
    assert health["integrity"] == "ok"
    assert health["session_count"] == 0
    assert health["active_session_count"] == 0


@pytest.mark.asyncio
async def test_check_database_health_reports_failure(tmp_path):
    health = await check_database_health(Path(tmp_path / "missing" / "x.db"))
    assert health["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_foreign_keys_enforced(tmp_path):
    """Messages cannot reference a missing session."""
    db_path = tmp_path / "test.db"
    await init_database(db_path)

    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA foreign_keys = ON")

        with pytest.raises(aiosqlite.IntegrityError):
            await db.execute(
                "INSERT INTO messages (id, session_id, seq, role, content, timestamp) "
                "VALUES ('m1', 'nonexistent', 1, 'user', 'test', '2026-01-01T00:00:00')"
            )
