"""关系生命周期状态机

列层面的状态只有三种（relationships.status）：

    active ──end──▶ pending_deletion ──confirm_resume──▶ active
                          │
                          └──purge（宽限期到期，reaper）──▶ deleted（终态）

pending_deletion 内部再按 resume_requested_by 是否为空细分为 Ended / AwaitingPartner，
这里把 “状态列 + 若干可空字段” 收拢成显式的变体类型：

- read_state(rel)  ：行 → 变体（字段组合不合法时直接报错，不做猜测）
- write_state(rel) ：变体 → 行（保证 resume 字段只会在 pending_deletion 下存在）

所有业务动作（end / request_resume / cancel_resume / purge）都是 “旧变体 → 新变体”
的纯函数，不碰数据库；持久化与并发控制在 RelationshipService / GracePeriodReaper 里。
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Union, assert_never

from ..utils.errors import (
    GracePeriodExpired,
    InvalidTransition,
    NoPendingRelationship,
    NoPendingRequest,
    NotActive,
    NotRequester,
)
from ..utils.timeutil import ensure_utc

if TYPE_CHECKING:
    from ..models import Relationship


class RelationshipStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING_DELETION = "pending_deletion"
    DELETED = "deleted"


class LifecycleEvent(str, enum.Enum):
    END = "end"
    REQUEST_RESUME = "request_resume"
    CONFIRM_RESUME = "confirm_resume"
    CANCEL_RESUME = "cancel_resume"
    PURGE = "purge"


# (当前状态, 事件) -> 目标状态；不在表里的组合一律非法
TRANSITIONS: dict[tuple[RelationshipStatus, LifecycleEvent], RelationshipStatus] = {
    (RelationshipStatus.ACTIVE, LifecycleEvent.END): RelationshipStatus.PENDING_DELETION,
    (RelationshipStatus.PENDING_DELETION, LifecycleEvent.REQUEST_RESUME): RelationshipStatus.PENDING_DELETION,
    (RelationshipStatus.PENDING_DELETION, LifecycleEvent.CONFIRM_RESUME): RelationshipStatus.ACTIVE,
    (RelationshipStatus.PENDING_DELETION, LifecycleEvent.CANCEL_RESUME): RelationshipStatus.PENDING_DELETION,
    (RelationshipStatus.PENDING_DELETION, LifecycleEvent.PURGE): RelationshipStatus.DELETED,
}


def check_transition(current: RelationshipStatus, event: LifecycleEvent) -> RelationshipStatus:
    target = TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition(f"Cannot apply '{event.value}' to a relationship in '{current.value}' state")
    return target


@dataclass(frozen=True)
class Active:
    status = RelationshipStatus.ACTIVE


@dataclass(frozen=True)
class Ended:
    """已结束、宽限期内、还没有人发起恢复。"""

    ended_at: datetime | None
    status = RelationshipStatus.PENDING_DELETION


@dataclass(frozen=True)
class AwaitingPartner:
    """已结束，且一方已发起恢复，等待另一方确认。"""

    ended_at: datetime | None
    requested_by: int
    requested_at: datetime | None
    status = RelationshipStatus.PENDING_DELETION


@dataclass(frozen=True)
class Deleted:
    status = RelationshipStatus.DELETED


LifecycleState = Union[Active, Ended, AwaitingPartner, Deleted]


class ResumeOutcome(str, enum.Enum):
    PENDING_PARTNER_APPROVAL = "pending_partner_approval"
    ACTIVE = "active"


@dataclass(frozen=True)
class ResumeDecision:
    state: LifecycleState
    outcome: ResumeOutcome
    # 首次发起（需要落库）时为 True；重复点击为 False
    changed: bool


def permanent_deletion_at(ended_at: datetime | None, grace_period: timedelta) -> datetime | None:
    ended = ensure_utc(ended_at)
    if ended is None:
        return None
    return ended + grace_period


def grace_period_elapsed(ended_at: datetime | None, grace_period: timedelta, now: datetime) -> bool:
    """宽限期是否已过（reaper 口径：ended_at + 宽限期 <= now）。"""
    deadline = permanent_deletion_at(ended_at, grace_period)
    return deadline is not None and deadline <= now


def read_state(rel: Relationship) -> LifecycleState:
    try:
        status = RelationshipStatus(rel.status)
    except ValueError:
        raise InvalidTransition(f"Unknown relationship status: {rel.status!r}") from None

    if status is RelationshipStatus.ACTIVE:
        return Active()
    if status is RelationshipStatus.DELETED:
        return Deleted()
    if status is RelationshipStatus.PENDING_DELETION:
        ended_at = ensure_utc(rel.ended_at)
        if rel.resume_requested_by is None:
            return Ended(ended_at=ended_at)
        return AwaitingPartner(
            ended_at=ended_at,
            requested_by=int(rel.resume_requested_by),
            requested_at=ensure_utc(rel.resume_requested_at),
        )
    assert_never(status)


def write_state(rel: Relationship, state: LifecycleState, *, now: datetime) -> None:
    """把变体写回行；resume 字段只在 AwaitingPartner 下非空。"""
    if isinstance(state, Active):
        rel.ended_at = None
        rel.resume_requested_by = None
        rel.resume_requested_at = None
    elif isinstance(state, Ended):
        rel.ended_at = state.ended_at
        rel.resume_requested_by = None
        rel.resume_requested_at = None
    elif isinstance(state, AwaitingPartner):
        rel.ended_at = state.ended_at
        rel.resume_requested_by = state.requested_by
        rel.resume_requested_at = state.requested_at
    elif isinstance(state, Deleted):
        rel.resume_requested_by = None
        rel.resume_requested_at = None
    else:
        assert_never(state)
    rel.status = state.status.value
    rel.updated_at = now


def end(state: LifecycleState, *, now: datetime) -> Ended:
    if not isinstance(state, Active):
        raise NotActive()
    check_transition(state.status, LifecycleEvent.END)
    return Ended(ended_at=now)


def request_resume(
    state: LifecycleState,
    user_id: int,
    *,
    now: datetime,
    grace_period: timedelta,
) -> ResumeDecision:
    """恢复握手：第一次点击记录请求；同一人重复点击不变；另一方点击即完成恢复。"""
    if isinstance(state, (Active, Deleted)):
        raise NoPendingRelationship()

    deadline = permanent_deletion_at(state.ended_at, grace_period)
    if deadline is not None and deadline < now:
        raise GracePeriodExpired()

    if isinstance(state, Ended):
        check_transition(state.status, LifecycleEvent.REQUEST_RESUME)
        return ResumeDecision(
            state=AwaitingPartner(ended_at=state.ended_at, requested_by=user_id, requested_at=now),
            outcome=ResumeOutcome.PENDING_PARTNER_APPROVAL,
            changed=True,
        )
    if isinstance(state, AwaitingPartner):
        if state.requested_by == user_id:
            return ResumeDecision(state=state, outcome=ResumeOutcome.PENDING_PARTNER_APPROVAL, changed=False)
        check_transition(state.status, LifecycleEvent.CONFIRM_RESUME)
        return ResumeDecision(state=Active(), outcome=ResumeOutcome.ACTIVE, changed=True)
    assert_never(state)


def cancel_resume(state: LifecycleState, user_id: int) -> Ended:
    if not isinstance(state, AwaitingPartner):
        raise NoPendingRequest()
    if state.requested_by != user_id:
        raise NotRequester()
    check_transition(state.status, LifecycleEvent.CANCEL_RESUME)
    return Ended(ended_at=state.ended_at)


def purge(state: LifecycleState, *, now: datetime, grace_period: timedelta) -> Deleted:
    if isinstance(state, (Active, Deleted)):
        check_transition(state.status, LifecycleEvent.PURGE)
    if isinstance(state, (Ended, AwaitingPartner)):
        if not grace_period_elapsed(state.ended_at, grace_period, now):
            raise InvalidTransition("Grace period has not elapsed yet")
    return Deleted()
