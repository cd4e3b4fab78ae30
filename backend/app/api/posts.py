"""Posts API"""

import base64
import binascii
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import AttachmentResponse, PostCreateRequest, PostListResponse, PostResponse, UserInfo
from ..services import PostService
from ..services.posts import PostCursor, PostItem
from ..utils.errors import AppError
from ..utils.timeutil import ensure_utc, isoformat_utc
from .deps import get_current_user_id

router = APIRouter(prefix="/posts", tags=["posts"])


def _encode_cursor(cursor: PostCursor | None) -> str | None:
    if cursor is None:
        return None
    raw = f"{isoformat_utc(cursor.created_at)}|{cursor.id}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _decode_cursor(value: str | None) -> PostCursor | None:
    """游标格式：base64url("<created_at ISO>|<id>")"""
    if not value:
        return None
    try:
        padding = "=" * (-len(value) % 4)
        raw = base64.urlsafe_b64decode(value + padding).decode("utf-8")
        created_raw, _, id_raw = raw.rpartition("|")
        created_at = ensure_utc(datetime.fromisoformat(created_raw))
        return PostCursor(created_at=created_at, id=int(id_raw))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise AppError("Invalid cursor") from e


def _post_response(item: PostItem) -> PostResponse:
    return PostResponse(
        id=item.post.id,
        text=item.post.text,
        author=UserInfo.model_validate(item.author) if item.author is not None else None,
        attachments=[AttachmentResponse.model_validate(a) for a in item.attachments],
        created_at=isoformat_utc(item.post.created_at),
    )


@router.get("", response_model=PostListResponse)
async def list_posts(
    limit: int = Query(20, ge=1, le=100),
    cursor: str | None = None,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """当前关系下的帖子（按时间倒序，游标分页）"""
    page = await PostService(db).list_posts(user_id, limit=limit, cursor=_decode_cursor(cursor))
    return PostListResponse(
        items=[_post_response(item) for item in page.items],
        next_cursor=_encode_cursor(page.next_cursor),
    )


@router.post("", response_model=PostResponse, status_code=201)
async def create_post(
    body: PostCreateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    item = await PostService(db).create_post(user_id, body.text, body.attachment_ids)
    return _post_response(item)


@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await PostService(db).delete_post(user_id, post_id)
