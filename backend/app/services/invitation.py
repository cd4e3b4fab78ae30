"""邀请码签发 / 校验

- 每个用户同时最多一条 pending 邀请：新建时把旧的 pending 全部置为 cancelled
- 过期采用惰性标记：读到过期的 pending 邀请时才写 expired，没有后台定时任务
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import Invitation, User
from ..utils.errors import AlreadyPaired, CodeGenerationExhausted
from ..utils.invite_code import generate_invite_code, normalize_invite_code
from ..utils.timeutil import ensure_utc, utcnow
from .membership import get_user, holds_relationship

logger = logging.getLogger(__name__)

INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"
INVITE_EXPIRED = "expired"
INVITE_CANCELLED = "cancelled"


@dataclass(frozen=True)
class InviteInfo:
    code: str
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class InviteValidation:
    valid: bool
    inviter: User | None = None
    expires_at: datetime | None = None


def build_invite_url(base_url: str, code: str) -> str:
    return f"{base_url.rstrip('/')}/sign-up?code={code}"


def is_invitation_expired(invitation: Invitation, now: datetime) -> bool:
    expires_at = ensure_utc(invitation.expires_at)
    return expires_at is not None and expires_at <= now


class InvitationService:
    """邀请码服务（每个请求一个实例，绑定当前 AsyncSession）。"""

    def __init__(
        self,
        db: AsyncSession,
        *,
        ttl: timedelta | None = None,
        max_attempts: int | None = None,
        code_generator: Callable[[], str] = generate_invite_code,
    ):
        self.db = db
        self.ttl = ttl if ttl is not None else timedelta(days=settings.invite_ttl_days)
        self.max_attempts = max_attempts if max_attempts is not None else settings.invite_code_max_attempts
        self._generate_code = code_generator

    async def _code_exists(self, code: str) -> bool:
        result = await self.db.execute(
            select(Invitation.id).where(Invitation.invite_code == code).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _generate_unique_code(self) -> str:
        # 首次生成 + 最多 max_attempts 次碰撞重试
        for _ in range(self.max_attempts + 1):
            code = self._generate_code()
            if not await self._code_exists(code):
                return code
        logger.error("[INVITE] Invite code collisions exhausted after %s retries", self.max_attempts)
        raise CodeGenerationExhausted()

    async def create_invite(
        self,
        user_id: int,
        *,
        base_url: str,
        now: datetime | None = None,
    ) -> InviteInfo:
        now = now or utcnow()

        if await holds_relationship(self.db, user_id):
            raise AlreadyPaired()

        # 旧的 pending 邀请作废；和新邀请一起提交，生成失败时不会留下 “只作废没新建”
        await self.db.execute(
            update(Invitation)
            .where(Invitation.created_by == user_id, Invitation.status == INVITE_PENDING)
            .values(status=INVITE_CANCELLED)
        )

        code = await self._generate_unique_code()
        expires_at = now + self.ttl
        invitation = Invitation(
            invite_code=code,
            created_by=user_id,
            status=INVITE_PENDING,
            expires_at=expires_at,
            created_at=now,
        )
        self.db.add(invitation)
        await self.db.commit()

        logger.info("[INVITE] Created invite user_id=%s expires_at=%s", user_id, expires_at.isoformat())
        return InviteInfo(code=code, url=build_invite_url(base_url, code), expires_at=expires_at)

    async def validate_invite(self, code: str, *, now: datetime | None = None) -> InviteValidation:
        """只读查询：任何无效情况都用 valid=False 表达，不抛错。"""
        now = now or utcnow()
        normalized = normalize_invite_code(code)
        if not normalized:
            return InviteValidation(valid=False)

        try:
            result = await self.db.execute(
                select(Invitation).where(Invitation.invite_code == normalized).limit(1)
            )
            invitation = result.scalar_one_or_none()
            if invitation is None:
                return InviteValidation(valid=False)

            expires_at = ensure_utc(invitation.expires_at)
            if invitation.status != INVITE_PENDING or is_invitation_expired(invitation, now):
                return InviteValidation(valid=False, expires_at=expires_at)

            inviter = await get_user(self.db, invitation.created_by)
            return InviteValidation(valid=True, inviter=inviter, expires_at=expires_at)
        except Exception:
            logger.exception("[INVITE] Validate invite failed")
            return InviteValidation(valid=False)

    async def get_pending_invite(
        self,
        user_id: int,
        *,
        base_url: str,
        now: datetime | None = None,
    ) -> InviteInfo | None:
        """本人最近一条 pending 邀请；和 validate_invite 一样，查询失败时按 “没有邀请” 返回。"""
        now = now or utcnow()
        try:
            result = await self.db.execute(
                select(Invitation)
                .where(Invitation.created_by == user_id, Invitation.status == INVITE_PENDING)
                .order_by(Invitation.created_at.desc(), Invitation.id.desc())
                .limit(1)
            )
            invitation = result.scalars().first()
            if invitation is None:
                return None

            invitation_id = invitation.id
            if is_invitation_expired(invitation, now):
                invitation.status = INVITE_EXPIRED
                await self.db.commit()
                logger.info("[INVITE] Marked invite expired invitation_id=%s", invitation_id)
                return None

            return InviteInfo(
                code=invitation.invite_code,
                url=build_invite_url(base_url, invitation.invite_code),
                expires_at=ensure_utc(invitation.expires_at),
            )
        except Exception:
            await self.db.rollback()
            logger.exception("[INVITE] Get pending invite failed user_id=%s", user_id)
            return None
