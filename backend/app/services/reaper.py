"""宽限期清理（reaper）

扫描所有 pending_deletion 的关系，ended_at + 宽限期 <= now 的逐条终结：
1) 该关系下帖子的附件软删除（deleted_at）
2) 帖子软删除
3) 关系置为 deleted
4) 仍指向该关系的用户指针清空

每条关系单独提交；某条失败只回滚它自己并记入 errors，继续处理下一条。
执行时会在同一事务里重新读取并校验截止时间，与用户的 resume 并发时以版本号为准。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import Attachment, Post, Relationship, User
from ..utils.errors import exception_summary
from ..utils.timeutil import utcnow
from . import lifecycle
from .lifecycle import RelationshipStatus

logger = logging.getLogger(__name__)


@dataclass
class ReaperReport:
    relationships: int = 0
    posts: int = 0
    attachments: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "deleted_count": self.relationships,
            "stats": {
                "relationships": self.relationships,
                "posts": self.posts,
                "attachments": self.attachments,
            },
        }
        if self.errors:
            data["errors"] = list(self.errors)
        return data


class GracePeriodReaper:
    def __init__(self, db: AsyncSession, *, grace_period: timedelta | None = None):
        self.db = db
        self.grace_period = grace_period if grace_period is not None else timedelta(days=settings.grace_period_days)

    async def _due_relationship_ids(self, now: datetime) -> list[int]:
        result = await self.db.execute(
            select(Relationship.id, Relationship.ended_at)
            .where(Relationship.status == RelationshipStatus.PENDING_DELETION.value)
            .order_by(Relationship.id.asc())
        )
        return [
            int(rel_id)
            for rel_id, ended_at in result.all()
            if lifecycle.grace_period_elapsed(ended_at, self.grace_period, now)
        ]

    async def _finalize(self, relationship_id: int, now: datetime) -> tuple[int, int] | None:
        """终结单条关系，返回 (posts, attachments)；已被并发处理/恢复时返回 None。"""
        result = await self.db.execute(select(Relationship).where(Relationship.id == relationship_id))
        relationship = result.scalar_one_or_none()
        if relationship is None or relationship.status != RelationshipStatus.PENDING_DELETION.value:
            return None
        if not lifecycle.grace_period_elapsed(relationship.ended_at, self.grace_period, now):
            return None

        new_state = lifecycle.purge(lifecycle.read_state(relationship), now=now, grace_period=self.grace_period)

        post_ids_result = await self.db.execute(
            select(Post.id).where(Post.relationship_id == relationship_id)
        )
        post_ids = [int(pid) for pid in post_ids_result.scalars().all()]

        attachments = 0
        posts = 0
        if post_ids:
            att_result = await self.db.execute(
                update(Attachment)
                .where(Attachment.post_id.in_(post_ids), Attachment.deleted_at.is_(None))
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )
            attachments = int(att_result.rowcount or 0)

            post_result = await self.db.execute(
                update(Post)
                .where(Post.relationship_id == relationship_id, Post.deleted_at.is_(None))
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )
            posts = int(post_result.rowcount or 0)

        lifecycle.write_state(relationship, new_state, now=now)

        member_ids = [uid for uid in (relationship.user1_id, relationship.user2_id) if uid is not None]
        if member_ids:
            await self.db.execute(
                update(User)
                .where(User.id.in_(member_ids), User.current_relationship_id == relationship_id)
                .values(current_relationship_id=None)
                .execution_options(synchronize_session=False)
            )

        await self.db.commit()
        return posts, attachments

    async def sweep(self, *, now: datetime | None = None) -> ReaperReport:
        now = now or utcnow()
        report = ReaperReport()

        due_ids = await self._due_relationship_ids(now)
        if not due_ids:
            logger.info("[REAPER] No relationships to clean up")
            return report

        for relationship_id in due_ids:
            try:
                counts = await self._finalize(relationship_id, now)
            except Exception as e:
                await self.db.rollback()
                logger.exception("[REAPER] Failed to finalize relationship_id=%s", relationship_id)
                report.errors.append(f"relationship {relationship_id}: {exception_summary(e)}")
                continue

            if counts is None:
                continue
            posts, attachments = counts
            report.relationships += 1
            report.posts += posts
            report.attachments += attachments

        logger.info(
            "[REAPER] Cleanup completed: relationships=%s posts=%s attachments=%s errors=%s",
            report.relationships,
            report.posts,
            report.attachments,
            len(report.errors),
        )
        return report
