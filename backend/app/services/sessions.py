"""登录会话：签发、解析、撤销

token 自身带签名和过期时间，但仍以 user_sessions 表为准：
退出登录后同一个 token 立即失效，不用等到过期。
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import UserSession
from ..utils.session_token import issue_session_token, verify_session_token
from ..utils.timeutil import ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: datetime


class SessionService:
    def __init__(self, db: AsyncSession, *, secret: str | None = None, days: int | None = None):
        self.db = db
        self.secret = secret if secret is not None else (settings.session_secret or "")
        self.days = int(days if days is not None else settings.session_days)

    async def open_session(self, user_id: int, *, now: datetime | None = None) -> IssuedSession:
        now = now or utcnow()
        session_id = secrets.token_urlsafe(24)
        expires_at = now + timedelta(days=self.days)

        self.db.add(
            UserSession(
                session_id=session_id,
                user_id=user_id,
                expires_at=expires_at,
                created_at=now,
            )
        )
        await self.db.commit()

        token = issue_session_token(
            user_id,
            session_id=session_id,
            secret=self.secret,
            days=self.days,
            now=int(now.timestamp()),
        )
        return IssuedSession(token=token, expires_at=expires_at)

    async def resolve(self, token: str | None, *, now: datetime | None = None) -> tuple[int | None, str]:
        """返回 (user_id, reason)；签名、过期、撤销任一不通过时 user_id 为 None。"""
        now = now or utcnow()
        claims, reason = verify_session_token(token, secret=self.secret, now=int(now.timestamp()))
        if claims is None:
            return None, reason

        result = await self.db.execute(
            select(UserSession).where(UserSession.session_id == claims.session_id)
        )
        row = result.scalar_one_or_none()
        if row is None or row.user_id != claims.user_id:
            return None, "unknown_session"
        if row.revoked_at is not None:
            return None, "revoked"
        expires_at = ensure_utc(row.expires_at)
        if expires_at is not None and expires_at <= now:
            return None, "expired"
        return claims.user_id, "ok"

    async def revoke(self, token: str | None, *, now: datetime | None = None) -> bool:
        """撤销 token 对应的会话；token 无效或已撤销时返回 False。"""
        now = now or utcnow()
        claims, _reason = verify_session_token(token, secret=self.secret, now=int(now.timestamp()))
        if claims is None:
            return False

        result = await self.db.execute(
            update(UserSession)
            .where(
                UserSession.session_id == claims.session_id,
                UserSession.user_id == claims.user_id,
                UserSession.revoked_at.is_(None),
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        revoked = bool(result.rowcount)
        if revoked:
            logger.info("[AUTH] Session revoked user_id=%s", claims.user_id)
        return revoked
