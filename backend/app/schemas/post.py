from pydantic import BaseModel, Field

from .user import UserInfo


class PostCreateRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    attachment_ids: list[int] = Field(default_factory=list, max_length=20)


class AttachmentCreateRequest(BaseModel):
    """上传时的原始文件名，只用来取扩展名"""
    filename: str = Field(..., min_length=1, max_length=255)


class AttachmentResponse(BaseModel):
    id: int
    filename: str

    class Config:
        from_attributes = True


class PostResponse(BaseModel):
    id: int
    text: str
    author: UserInfo | None = None
    attachments: list[AttachmentResponse] = Field(default_factory=list)
    created_at: str | None = None


class PostListResponse(BaseModel):
    """帖子分页：next_cursor 为空表示没有更多"""
    items: list[PostResponse]
    next_cursor: str | None = None
