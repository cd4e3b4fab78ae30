"""Relationship API：邀请、配对、结束 / 恢复"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import (
    AcceptInviteRequest,
    EndRelationshipResponse,
    InviteResponse,
    MessageResponse,
    PendingInviteResponse,
    RelationshipInfo,
    RelationshipResponse,
    ResumeRequestInfo,
    ResumeResponse,
    UpdateStartDateRequest,
    UserInfo,
    ValidateInviteResponse,
)
from ..services import InvitationService, PairingService, RelationshipService
from ..services.invitation import InviteInfo
from ..services.lifecycle import ResumeOutcome
from ..services.relationship import RelationshipView
from ..utils.errors import AppError, NotActive
from ..utils.invite_code import normalize_invite_code
from ..utils.timeutil import isoformat_utc
from .deps import get_current_user_id, resolve_base_url

router = APIRouter(prefix="/relationship", tags=["relationship"])


def _invite_response(info: InviteInfo) -> InviteResponse:
    return InviteResponse(
        invite_code=info.code,
        invite_url=info.url,
        expires_at=isoformat_utc(info.expires_at) or "",
    )


def _relationship_info(view: RelationshipView) -> RelationshipInfo:
    resume_request = None
    if view.resume_request is not None:
        resume_request = ResumeRequestInfo(
            requested_by=view.resume_request.requested_by,
            requested_at=isoformat_utc(view.resume_request.requested_at),
        )
    return RelationshipInfo(
        id=view.relationship.id,
        partner=UserInfo.model_validate(view.partner),
        relationship_start_date=isoformat_utc(view.start_date),
        status=view.status,
        created_at=isoformat_utc(view.created_at),
        permanent_deletion_at=isoformat_utc(view.permanent_deletion_at),
        resume_request=resume_request,
    )


def _parse_start_date(raw: str | None) -> datetime | None:
    if raw is None or not raw.strip():
        return None
    try:
        return datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError as e:
        raise AppError("relationship_start_date must be an ISO 8601 datetime") from e


@router.post("/invite", response_model=InviteResponse, status_code=201)
async def create_invite(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """生成邀请码（会作废本人之前未使用的邀请）"""
    info = await InvitationService(db).create_invite(user_id, base_url=resolve_base_url(request))
    return _invite_response(info)


@router.get("/invite", response_model=PendingInviteResponse)
async def get_pending_invite(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """获取本人最近一条仍有效的邀请"""
    info = await InvitationService(db).get_pending_invite(user_id, base_url=resolve_base_url(request))
    return PendingInviteResponse(invitation=_invite_response(info) if info else None)


@router.get("/invite/validate", response_model=ValidateInviteResponse)
async def validate_invite(
    code: str = Query(..., max_length=32),
    db: AsyncSession = Depends(get_db),
):
    """校验邀请码（注册页使用，无需登录）"""
    result = await InvitationService(db).validate_invite(normalize_invite_code(code))
    return ValidateInviteResponse(
        valid=result.valid,
        inviter=UserInfo.model_validate(result.inviter) if result.inviter is not None else None,
        expires_at=isoformat_utc(result.expires_at),
    )


@router.post("/accept", response_model=RelationshipResponse)
async def accept_invite(
    body: AcceptInviteRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """接受邀请，建立关系"""
    await PairingService(db).accept_invite(user_id, normalize_invite_code(body.invite_code))
    view = await RelationshipService(db).get_relationship(user_id)
    return RelationshipResponse(relationship=_relationship_info(view) if view else None)


@router.get("", response_model=RelationshipResponse)
async def get_relationship(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """当前关系（active 或宽限期内）；没有时 relationship 为 null"""
    view = await RelationshipService(db).get_relationship(user_id)
    return RelationshipResponse(relationship=_relationship_info(view) if view else None)


@router.patch("/start-date", response_model=RelationshipResponse)
async def update_start_date(
    body: UpdateStartDateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    service = RelationshipService(db)
    await service.update_start_date(user_id, _parse_start_date(body.relationship_start_date))
    view = await service.get_relationship(user_id)
    if view is None:
        raise NotActive()
    return RelationshipResponse(relationship=_relationship_info(view))


@router.post("/end", response_model=EndRelationshipResponse)
async def end_relationship(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """结束关系：进入宽限期，到期后由 reaper 永久删除"""
    deletion_at = await RelationshipService(db).end_relationship(user_id)
    return EndRelationshipResponse(
        message="Relationship ended. Data will be permanently deleted after the grace period.",
        permanent_deletion_at=isoformat_utc(deletion_at) or "",
    )


@router.post(
    "/resume",
    response_model=ResumeResponse,
    responses={202: {"model": ResumeResponse, "description": "Resume request recorded"}},
)
async def resume_relationship(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """恢复关系：第一次调用发起请求（202），另一方再调用即恢复（200）"""
    result = await RelationshipService(db).resume_relationship(user_id)
    if result.status is ResumeOutcome.ACTIVE:
        return ResumeResponse(message="Relationship resumed", status=result.status.value)

    body = ResumeResponse(
        message="Resume request sent. Waiting for your partner to confirm.",
        status=result.status.value,
        requested_by=result.requested_by,
    )
    if result.created:
        return JSONResponse(body.model_dump(), status_code=202)
    return body


@router.post("/resume/cancel", response_model=MessageResponse)
async def cancel_resume_request(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """撤回本人发起的恢复请求"""
    await RelationshipService(db).cancel_resume_request(user_id)
    return MessageResponse(message="Resume request cancelled")
