"""账号：注册（可带邀请码直接配对）、登录、注销账号"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Attachment, Invitation, Post, Relationship, User, UserSession
from ..utils.errors import ActiveRelationshipBlocksDeletion, EmailTaken, InvalidCredentials, UsernameTaken
from ..utils.password import hash_password, verify_password
from ..utils.timeutil import utcnow
from .lifecycle import RelationshipStatus
from .membership import get_current_relationship, get_user
from .pairing import PairingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignUpResult:
    user: User
    relationship: Relationship | None


class AccountService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def sign_up(
        self,
        *,
        email: str,
        username: str,
        password: str,
        display_name: str | None = None,
        invite_code: str | None = None,
        now: datetime | None = None,
    ) -> SignUpResult:
        now = now or utcnow()
        email = email.strip().lower()
        username = username.strip()

        result = await self.db.execute(
            select(User).where(or_(User.email == email, User.username == username)).limit(1)
        )
        existing = result.scalars().first()
        if existing is not None:
            raise EmailTaken() if existing.email == email else UsernameTaken()

        pairing = PairingService(self.db)
        # 邀请码先校验（过期会被标记并提交），通过后再建用户
        invitation = await pairing.resolve_invitation(invite_code, now=now) if invite_code else None

        try:
            user = User(
                email=email,
                username=username,
                password_hash=hash_password(password),
                display_name=(display_name or "").strip() or None,
                created_at=now,
                updated_at=now,
            )
            self.db.add(user)
            await self.db.flush()

            relationship = None
            if invitation is not None:
                relationship = await pairing.accept_for_new_user(user, invitation, now=now)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        if relationship is not None:
            await self.db.refresh(user)
            logger.info("[PAIR] Sign-up accepted invite user_id=%s relationship_id=%s", user.id, relationship.id)
        logger.info("[AUTH] User signed up user_id=%s", user.id)
        return SignUpResult(user=user, relationship=relationship)

    async def authenticate(self, login: str, password: str) -> User:
        """login 可以是邮箱或用户名。"""
        value = (login or "").strip()
        if not value or not password:
            raise InvalidCredentials()

        result = await self.db.execute(
            select(User).where(or_(User.email == value.lower(), User.username == value)).limit(1)
        )
        user = result.scalars().first()
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentials()
        return user

    async def delete_account(self, user_id: int, *, now: datetime | None = None) -> None:
        now = now or utcnow()
        user = await get_user(self.db, user_id)
        if user is None:
            return

        relationship = await get_current_relationship(self.db, user)
        if relationship is not None and relationship.status == RelationshipStatus.ACTIVE.value:
            raise ActiveRelationshipBlocksDeletion()

        post_ids_result = await self.db.execute(select(Post.id).where(Post.created_by == user_id))
        post_ids = list(post_ids_result.scalars().all())
        if post_ids:
            await self.db.execute(
                update(Attachment)
                .where(Attachment.post_id.in_(post_ids), Attachment.deleted_at.is_(None))
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                update(Post)
                .where(Post.id.in_(post_ids), Post.deleted_at.is_(None))
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )

        # 关系行保留给 reaper；这里先断开成员引用，避免依赖数据库的 ON DELETE SET NULL
        await self.db.execute(
            update(Relationship)
            .where(Relationship.user1_id == user_id)
            .values(user1_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Relationship)
            .where(Relationship.user2_id == user_id)
            .values(user2_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Relationship)
            .where(Relationship.resume_requested_by == user_id)
            .values(resume_requested_by=None, resume_requested_at=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Post)
            .where(Post.created_by == user_id)
            .values(created_by=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Attachment)
            .where(Attachment.uploaded_by == user_id)
            .values(uploaded_by=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(delete(UserSession).where(UserSession.user_id == user_id))
        await self.db.execute(delete(Invitation).where(Invitation.created_by == user_id))
        await self.db.execute(
            update(Invitation)
            .where(Invitation.accepted_by == user_id)
            .values(accepted_by=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(delete(User).where(User.id == user_id))
        await self.db.commit()
        logger.info("[AUTH] Account deleted user_id=%s", user_id)
