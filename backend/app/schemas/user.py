from pydantic import BaseModel, Field


class UserInfo(BaseModel):
    """对外展示的用户信息（不含邮箱、密码等）"""
    id: int
    username: str
    display_name: str | None
    avatar: str | None

    class Config:
        from_attributes = True


class ProfileUpdateRequest(BaseModel):
    """只更新请求里出现的字段；avatar 传 null 表示移除头像"""
    display_name: str | None = Field(default=None, max_length=100)
    avatar: str | None = Field(default=None, max_length=500)
