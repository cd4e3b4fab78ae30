from .admin import CleanupResponse, CleanupStats
from .auth import MeResponse, SessionResponse, SignInRequest, SignUpRequest
from .post import AttachmentCreateRequest, AttachmentResponse, PostCreateRequest, PostListResponse, PostResponse
from .relationship import (
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
    ValidateInviteResponse,
)
from .user import ProfileUpdateRequest, UserInfo

__all__ = [
    "CleanupResponse",
    "CleanupStats",
    "MeResponse",
    "SessionResponse",
    "SignInRequest",
    "SignUpRequest",
    "AttachmentCreateRequest",
    "AttachmentResponse",
    "PostCreateRequest",
    "PostListResponse",
    "PostResponse",
    "AcceptInviteRequest",
    "EndRelationshipResponse",
    "InviteResponse",
    "MessageResponse",
    "PendingInviteResponse",
    "RelationshipInfo",
    "RelationshipResponse",
    "ResumeRequestInfo",
    "ResumeResponse",
    "UpdateStartDateRequest",
    "ValidateInviteResponse",
    "ProfileUpdateRequest",
    "UserInfo",
]
