from pydantic import BaseModel, Field

from .user import UserInfo


class InviteResponse(BaseModel):
    """邀请码信息"""
    invite_code: str
    invite_url: str
    expires_at: str


class PendingInviteResponse(BaseModel):
    invitation: InviteResponse | None = None


class AcceptInviteRequest(BaseModel):
    invite_code: str = Field(..., min_length=8, max_length=8, description="8 位邀请码")


class ValidateInviteResponse(BaseModel):
    """邀请码校验结果：只表达有效/无效，不区分 “不存在” 与 “已过期”。"""
    valid: bool
    inviter: UserInfo | None = None
    expires_at: str | None = None


class ResumeRequestInfo(BaseModel):
    requested_by: int
    requested_at: str | None = None


class RelationshipInfo(BaseModel):
    id: int
    partner: UserInfo
    relationship_start_date: str | None = None
    status: str
    created_at: str | None = None
    permanent_deletion_at: str | None = None
    resume_request: ResumeRequestInfo | None = None


class RelationshipResponse(BaseModel):
    relationship: RelationshipInfo | None = None


class UpdateStartDateRequest(BaseModel):
    """开始日期（ISO 8601）；传 null 表示清空。"""
    relationship_start_date: str | None = None


class EndRelationshipResponse(BaseModel):
    message: str
    permanent_deletion_at: str


class ResumeResponse(BaseModel):
    message: str
    status: str
    requested_by: int | None = None


class MessageResponse(BaseModel):
    message: str
