from __future__ import annotations

import sys
import unittest
from pathlib import Path
from typing_extensions import override

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from backend.app.database import _ensure_schema


class DBSchemaVersionColumnTests(unittest.IsolatedAsyncioTestCase):
    engine: AsyncEngine | None = None

    @override
    async def asyncSetUp(self):
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.engine = engine

        # 模拟加乐观锁之前的旧库
        async with engine.begin() as conn:
            await conn.execute(
                text(
                    "CREATE TABLE relationships ("
                    "id INTEGER PRIMARY KEY, "
                    "status TEXT, "
                    "ended_at TEXT"
                    ")"
                )
            )
            await conn.execute(
                text(
                    "CREATE TABLE invitations ("
                    "id INTEGER PRIMARY KEY, "
                    "created_by INTEGER, "
                    "status TEXT, "
                    "created_at TEXT"
                    ")"
                )
            )
            await conn.execute(
                text(
                    "CREATE TABLE posts ("
                    "id INTEGER PRIMARY KEY, "
                    "relationship_id INTEGER, "
                    "created_at TEXT"
                    ")"
                )
            )
            await conn.execute(text("INSERT INTO relationships (id, status) VALUES (1, 'active')"))

    @override
    async def asyncTearDown(self):
        if self.engine is not None:
            await self.engine.dispose()

    async def test_adds_version_column_and_indexes(self):
        assert self.engine is not None
        async with self.engine.begin() as conn:
            await _ensure_schema(conn)
            # 重复执行不报错
            await _ensure_schema(conn)

        async with self.engine.connect() as conn:
            cols = {row[1] for row in (await conn.execute(text("PRAGMA table_info(relationships)"))).fetchall()}
            version = (await conn.execute(text("SELECT version FROM relationships WHERE id = 1"))).scalar_one()
            indexes = {
                row[0]
                for row in (
                    await conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'index'"))
                ).fetchall()
            }

        self.assertIn("version", cols)
        self.assertEqual(version, 1)
        self.assertIn("idx_relationships_status_ended_at", indexes)
        self.assertIn("idx_invitations_creator_status_created", indexes)
        self.assertIn("idx_posts_rel_created_id", indexes)


if __name__ == "__main__":
    unittest.main()
