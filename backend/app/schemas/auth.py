from pydantic import BaseModel, Field

from .relationship import RelationshipInfo
from .user import UserInfo


class SignUpRequest(BaseModel):
    """注册请求；带 invite_code 时在同一事务里完成配对。"""

    email: str = Field(..., min_length=3, max_length=255)
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_\-.]+$")
    password: str = Field(..., min_length=8, max_length=128, repr=False)
    display_name: str | None = Field(default=None, max_length=100)
    invite_code: str | None = Field(default=None, max_length=8)


class SignInRequest(BaseModel):
    """登录请求：login 可以是邮箱或用户名。"""

    login: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=128, repr=False)


class SessionResponse(BaseModel):
    """登录/注册成功后的会话信息；token 同时写入 httpOnly cookie。"""

    token: str
    expires_at: str
    user: UserInfo
    relationship: RelationshipInfo | None = None


class MeResponse(BaseModel):
    user: UserInfo
    email: str
    current_relationship_id: int | None = None
