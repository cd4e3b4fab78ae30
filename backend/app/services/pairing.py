"""接受邀请 → 建立双向关系

一次成功的接受包含四处写入：新建关系、邀请置为 accepted、双方用户的
current_relationship_id。四处写入在同一个事务里提交，任何一步失败都整体回滚。
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Invitation, Relationship, User
from ..utils.errors import (
    AlreadyPaired,
    InvitationAlreadyUsed,
    InvitationExpired,
    InvitationNotFound,
    InviterAlreadyPaired,
    SelfInvite,
)
from ..utils.invite_code import normalize_invite_code
from ..utils.timeutil import utcnow
from .invitation import INVITE_ACCEPTED, INVITE_EXPIRED, INVITE_PENDING, is_invitation_expired
from .lifecycle import RelationshipStatus
from .membership import holds_relationship

logger = logging.getLogger(__name__)


class PairingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_invitation(self, code: str, *, now: datetime) -> Invitation:
        """取出可用的 pending 邀请；过期的会先标记 expired 并提交，再抛错。"""
        normalized = normalize_invite_code(code)
        invitation = None
        if normalized:
            result = await self.db.execute(
                select(Invitation).where(Invitation.invite_code == normalized).limit(1)
            )
            invitation = result.scalar_one_or_none()
        if invitation is None:
            raise InvitationNotFound()

        if invitation.status != INVITE_PENDING:
            raise InvitationAlreadyUsed()

        if is_invitation_expired(invitation, now):
            invitation.status = INVITE_EXPIRED
            await self.db.commit()
            logger.info("[PAIR] Marked invite expired invitation_id=%s", invitation.id)
            raise InvitationExpired()

        return invitation

    async def _point_users_at(self, relationship: Relationship, user_ids: list[int]) -> None:
        await self.db.execute(
            update(User)
            .where(User.id.in_(user_ids))
            .values(current_relationship_id=relationship.id)
        )

    async def link(self, invitation: Invitation, acceptor_id: int, *, now: datetime) -> Relationship:
        """写入关系 + 邀请 + 双方指针（只 flush，不提交；由调用方统一 commit）。"""
        relationship = Relationship(
            user1_id=invitation.created_by,
            user2_id=acceptor_id,
            status=RelationshipStatus.ACTIVE.value,
            start_date=None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(relationship)
        await self.db.flush()

        # 条件更新：并发接受同一邀请时只有一个请求能把 pending 改成 accepted
        result = await self.db.execute(
            update(Invitation)
            .where(Invitation.id == invitation.id, Invitation.status == INVITE_PENDING)
            .values(
                status=INVITE_ACCEPTED,
                accepted_by=acceptor_id,
                relationship_id=relationship.id,
                accepted_at=now,
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise InvitationAlreadyUsed()

        await self._point_users_at(relationship, [invitation.created_by, acceptor_id])
        await self.db.flush()
        return relationship

    async def accept_invite(self, user_id: int, code: str, *, now: datetime | None = None) -> Relationship:
        now = now or utcnow()

        if await holds_relationship(self.db, user_id):
            raise AlreadyPaired()

        invitation = await self.resolve_invitation(code, now=now)

        if invitation.created_by == user_id:
            raise SelfInvite()

        if await holds_relationship(self.db, invitation.created_by):
            raise InviterAlreadyPaired()

        try:
            relationship = await self.link(invitation, user_id, now=now)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "[PAIR] Invite accepted relationship_id=%s inviter=%s acceptor=%s",
            relationship.id,
            invitation.created_by,
            user_id,
        )
        return relationship

    async def accept_for_new_user(self, new_user: User, invitation: Invitation, *, now: datetime) -> Relationship:
        """注册流程里的接受：new_user 已 flush，和用户创建同一事务，由调用方提交。"""
        if await holds_relationship(self.db, invitation.created_by):
            raise InviterAlreadyPaired()
        return await self.link(invitation, new_user.id, now=now)
