from __future__ import annotations

import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import cast
from typing_extensions import override

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeMeta
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from backend.app.database import Base as _Base  # pyright: ignore[reportAny]
from backend.app.models import Invitation, Relationship, User

Base = cast(DeclarativeMeta, _Base)

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
GRACE = timedelta(days=7)


class DBTestCase(unittest.IsolatedAsyncioTestCase):
    """内存 SQLite + 全量建表；每个用例一个全新的库。"""

    engine: AsyncEngine | None = None
    session_factory: async_sessionmaker[AsyncSession] | None = None

    @override
    async def asyncSetUp(self):
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @override
    async def asyncTearDown(self):
        if self.engine is not None:
            await self.engine.dispose()

    def session(self) -> AsyncSession:
        assert self.session_factory is not None
        return self.session_factory()

    async def add_user(self, username: str, *, current_relationship_id: int | None = None) -> int:
        async with self.session() as session:
            user = User(
                email=f"{username}@example.com",
                username=username,
                password_hash="x",
                display_name=username.title(),
                current_relationship_id=current_relationship_id,
            )
            session.add(user)
            await session.commit()
            return user.id

    async def add_relationship(
        self,
        user1_id: int,
        user2_id: int,
        *,
        status: str = "active",
        ended_at: datetime | None = None,
        resume_requested_by: int | None = None,
        resume_requested_at: datetime | None = None,
        point_users: bool = True,
    ) -> int:
        async with self.session() as session:
            rel = Relationship(
                user1_id=user1_id,
                user2_id=user2_id,
                status=status,
                ended_at=ended_at,
                resume_requested_by=resume_requested_by,
                resume_requested_at=resume_requested_at,
                created_at=T0 - timedelta(days=30),
            )
            session.add(rel)
            await session.flush()
            if point_users:
                for uid in (user1_id, user2_id):
                    user = await session.get(User, uid)
                    assert user is not None
                    user.current_relationship_id = rel.id
            await session.commit()
            return rel.id

    async def add_invitation(
        self,
        created_by: int,
        code: str,
        *,
        status: str = "pending",
        expires_at: datetime | None = None,
        created_at: datetime | None = None,
    ) -> int:
        async with self.session() as session:
            invitation = Invitation(
                invite_code=code,
                created_by=created_by,
                status=status,
                expires_at=expires_at or (T0 + timedelta(days=7)),
                created_at=created_at or T0,
            )
            session.add(invitation)
            await session.commit()
            return invitation.id

    async def get_row(self, model, row_id: int):
        async with self.session() as session:
            return await session.get(model, row_id)
