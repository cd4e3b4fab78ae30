"""关系查询与生命周期操作（end / resume / cancel resume / 设置开始日期）

状态判断全部交给 lifecycle 里的纯函数，这里只负责：查行 → 计算新状态 → 写回 → 提交。
写回走 ORM 的 version_id_col，两个请求同时改同一条关系时，后提交的那个会得到
ConcurrentModification，而不是静默覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..models import Relationship, User
from ..utils.errors import ConcurrentModification, NoPendingRequest, NoPendingRelationship, NotActive
from ..utils.timeutil import ensure_utc, utcnow
from . import lifecycle
from .lifecycle import ResumeOutcome
from .membership import find_pending_deletion, get_active_relationship, get_current_relationship, get_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResumeRequestView:
    requested_by: int
    requested_at: datetime | None


@dataclass(frozen=True)
class RelationshipView:
    relationship: Relationship
    partner: User
    status: str
    start_date: datetime | None
    created_at: datetime | None
    permanent_deletion_at: datetime | None
    resume_request: ResumeRequestView | None


@dataclass(frozen=True)
class ResumeResult:
    status: ResumeOutcome
    requested_by: int | None
    # 首次发起恢复请求（HTTP 202）时为 True
    created: bool


class RelationshipService:
    def __init__(self, db: AsyncSession, *, grace_period: timedelta | None = None):
        self.db = db
        self.grace_period = grace_period if grace_period is not None else timedelta(days=settings.grace_period_days)

    async def _commit(self, relationship: Relationship) -> None:
        # rollback 之后实例全部过期，日志里的 id 要提前取出
        relationship_id = relationship.id
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("[LIFECYCLE] Version conflict relationship_id=%s", relationship_id)
            raise ConcurrentModification() from e

    def _view(self, relationship: Relationship, partner: User) -> RelationshipView:
        state = lifecycle.read_state(relationship)
        resume_request = None
        if isinstance(state, lifecycle.AwaitingPartner):
            resume_request = ResumeRequestView(requested_by=state.requested_by, requested_at=state.requested_at)
        return RelationshipView(
            relationship=relationship,
            partner=partner,
            status=state.status.value,
            start_date=ensure_utc(relationship.start_date),
            created_at=ensure_utc(relationship.created_at),
            permanent_deletion_at=lifecycle.permanent_deletion_at(relationship.ended_at, self.grace_period),
            resume_request=resume_request,
        )

    async def get_relationship(self, user_id: int) -> RelationshipView | None:
        user = await get_user(self.db, user_id)
        if user is None:
            return None
        relationship = await get_current_relationship(self.db, user)
        if relationship is None:
            return None

        partner_id = relationship.partner_id(user_id)
        partner = await get_user(self.db, partner_id) if partner_id is not None else None
        if partner is None:
            return None
        return self._view(relationship, partner)

    async def end_relationship(self, user_id: int, *, now: datetime | None = None) -> datetime:
        """结束关系，返回永久删除时间（now + 宽限期，不落库）。"""
        now = now or utcnow()
        relationship = await get_active_relationship(self.db, user_id)
        if relationship is None:
            raise NotActive()

        new_state = lifecycle.end(lifecycle.read_state(relationship), now=now)
        lifecycle.write_state(relationship, new_state, now=now)
        await self._commit(relationship)

        logger.info("[LIFECYCLE] Relationship ended relationship_id=%s by user_id=%s", relationship.id, user_id)
        return now + self.grace_period

    async def resume_relationship(self, user_id: int, *, now: datetime | None = None) -> ResumeResult:
        now = now or utcnow()
        relationship = await find_pending_deletion(self.db, user_id)
        if relationship is None:
            raise NoPendingRelationship()

        decision = lifecycle.request_resume(
            lifecycle.read_state(relationship),
            user_id,
            now=now,
            grace_period=self.grace_period,
        )
        if decision.changed:
            lifecycle.write_state(relationship, decision.state, now=now)
            await self._commit(relationship)

        if decision.outcome is ResumeOutcome.ACTIVE:
            logger.info("[LIFECYCLE] Relationship resumed relationship_id=%s", relationship.id)
            return ResumeResult(status=decision.outcome, requested_by=None, created=False)

        if decision.changed:
            logger.info(
                "[LIFECYCLE] Resume requested relationship_id=%s by user_id=%s", relationship.id, user_id
            )
        return ResumeResult(status=decision.outcome, requested_by=user_id, created=decision.changed)

    async def cancel_resume_request(self, user_id: int, *, now: datetime | None = None) -> None:
        now = now or utcnow()
        relationship = await find_pending_deletion(self.db, user_id)
        if relationship is None:
            raise NoPendingRequest()

        new_state = lifecycle.cancel_resume(lifecycle.read_state(relationship), user_id)
        lifecycle.write_state(relationship, new_state, now=now)
        await self._commit(relationship)
        logger.info("[LIFECYCLE] Resume request cancelled relationship_id=%s", relationship.id)

    async def update_start_date(
        self,
        user_id: int,
        start_date: datetime | None,
        *,
        now: datetime | None = None,
    ) -> Relationship:
        now = now or utcnow()
        relationship = await get_active_relationship(self.db, user_id)
        if relationship is None:
            raise NotActive()

        relationship.start_date = ensure_utc(start_date)
        relationship.updated_at = now
        await self._commit(relationship)
        return relationship
