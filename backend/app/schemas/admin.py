from pydantic import BaseModel


class CleanupStats(BaseModel):
    relationships: int
    posts: int
    attachments: int


class CleanupResponse(BaseModel):
    """宽限期清理结果"""
    message: str
    deleted_count: int
    stats: CleanupStats
    errors: list[str] | None = None
