from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import User
from ..utils.errors import Unauthorized
from ..utils.timeutil import utcnow
from .membership import get_user

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("display_name", "avatar")


class ProfileService:
    """个人资料：只允许改显示名和头像（头像是附件地址，null 表示移除）。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def update_profile(
        self,
        user_id: int,
        changes: Mapping[str, str | None],
        *,
        now: datetime | None = None,
    ) -> User:
        now = now or utcnow()
        user = await get_user(self.db, user_id)
        if user is None:
            raise Unauthorized()

        touched = []
        for name in PROFILE_FIELDS:
            if name not in changes:
                continue
            value = (changes[name] or "").strip() or None
            setattr(user, name, value)
            touched.append(name)

        if touched:
            user.updated_at = now
            await self.db.commit()
            logger.info("[PROFILE] Updated %s user_id=%s", ",".join(touched), user_id)
        return user
