"""“当前关系” 指针的读取与校验

users.current_relationship_id 只是缓存：读的时候以 relationships 表为准，
指针指向不存在 / 已删除 / 不含本人的关系时一律视为没有关系。
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Relationship, User
from .lifecycle import RelationshipStatus

logger = logging.getLogger(__name__)

# 持有这些状态的关系时不能再发起/接受新的配对（宽限期内仍可能恢复）
HELD_STATUSES = (RelationshipStatus.ACTIVE.value, RelationshipStatus.PENDING_DELETION.value)


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_relationship(db: AsyncSession, user: User) -> Relationship | None:
    """通过指针取当前关系（active 或 pending_deletion），并校验指针是否可信。"""
    rel_id = user.current_relationship_id
    if rel_id is None:
        return None

    result = await db.execute(select(Relationship).where(Relationship.id == rel_id))
    rel = result.scalar_one_or_none()
    if rel is None or not rel.has_member(user.id) or rel.status not in HELD_STATUSES:
        logger.warning(
            "[MEMBERSHIP] Stale relationship pointer user_id=%s relationship_id=%s",
            user.id,
            rel_id,
        )
        return None
    return rel


async def holds_relationship(db: AsyncSession, user_id: int) -> bool:
    user = await get_user(db, user_id)
    if user is None:
        return False
    return await get_current_relationship(db, user) is not None


async def get_active_relationship(db: AsyncSession, user_id: int) -> Relationship | None:
    user = await get_user(db, user_id)
    if user is None:
        return None
    rel = await get_current_relationship(db, user)
    if rel is None or rel.status != RelationshipStatus.ACTIVE.value:
        return None
    return rel


async def find_pending_deletion(db: AsyncSession, user_id: int) -> Relationship | None:
    """按成员身份（而不是指针）查找本人处于 pending_deletion 的关系。"""
    result = await db.execute(
        select(Relationship)
        .where(
            or_(Relationship.user1_id == user_id, Relationship.user2_id == user_id),
            Relationship.status == RelationshipStatus.PENDING_DELETION.value,
        )
        .order_by(Relationship.id.desc())
        .limit(1)
    )
    return result.scalars().first()
