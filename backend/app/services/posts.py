from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Attachment, Post, User
from ..utils.errors import InvalidAttachments, PairingRequired, PostNotFound, UnsupportedAttachmentType
from ..utils.timeutil import ensure_utc, utcnow
from .membership import get_active_relationship, get_current_relationship, get_user

logger = logging.getLogger(__name__)

# 只登记图片；字节本身由对象存储负责
ATTACHMENT_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic"})


@dataclass(frozen=True)
class PostCursor:
    created_at: datetime
    id: int


@dataclass
class PostItem:
    post: Post
    author: User | None
    attachments: list[Attachment] = field(default_factory=list)


@dataclass
class PostPage:
    items: list[PostItem]
    next_cursor: PostCursor | None


class PostService:
    """关系内帖子：发帖需要 active 关系；宽限期内仍可浏览。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_post(
        self,
        user_id: int,
        text: str,
        attachment_ids: list[int] | None = None,
        *,
        now: datetime | None = None,
    ) -> PostItem:
        now = now or utcnow()
        relationship = await get_active_relationship(self.db, user_id)
        if relationship is None:
            raise PairingRequired()

        ids = sorted({int(i) for i in (attachment_ids or [])})
        attachments: list[Attachment] = []
        if ids:
            # 只能挂自己上传、尚未挂到其他帖子、未删除的附件
            result = await self.db.execute(
                select(Attachment).where(
                    Attachment.id.in_(ids),
                    Attachment.uploaded_by == user_id,
                    Attachment.post_id.is_(None),
                    Attachment.deleted_at.is_(None),
                )
            )
            attachments = list(result.scalars().all())
            if len(attachments) != len(ids):
                found = {a.id for a in attachments}
                missing = ", ".join(str(i) for i in ids if i not in found)
                raise InvalidAttachments(f"One or more attachment IDs not found or already used: {missing}")

        post = Post(
            text=text,
            created_by=user_id,
            relationship_id=relationship.id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(post)
        await self.db.flush()
        for attachment in attachments:
            attachment.post_id = post.id
        await self.db.commit()

        author = await get_user(self.db, user_id)
        return PostItem(post=post, author=author, attachments=attachments)

    async def list_posts(
        self,
        user_id: int,
        *,
        limit: int = 20,
        cursor: PostCursor | None = None,
    ) -> PostPage:
        user = await get_user(self.db, user_id)
        relationship = await get_current_relationship(self.db, user) if user is not None else None
        if relationship is None:
            return PostPage(items=[], next_cursor=None)

        limit = max(1, min(int(limit or 20), 100))
        query = select(Post).where(Post.relationship_id == relationship.id, Post.deleted_at.is_(None))
        if cursor is not None:
            query = query.where(
                or_(
                    Post.created_at < cursor.created_at,
                    and_(Post.created_at == cursor.created_at, Post.id < cursor.id),
                )
            )
        # 多取一条判断是否还有下一页
        result = await self.db.execute(
            query.order_by(Post.created_at.desc(), Post.id.desc()).limit(limit + 1)
        )
        posts = list(result.scalars().all())
        has_next = len(posts) > limit
        posts = posts[:limit]

        post_ids = [p.id for p in posts]
        author_ids = {p.created_by for p in posts if p.created_by is not None}

        attachments_by_post: dict[int, list[Attachment]] = {}
        if post_ids:
            att_result = await self.db.execute(
                select(Attachment)
                .where(Attachment.post_id.in_(post_ids), Attachment.deleted_at.is_(None))
                .order_by(Attachment.id.asc())
            )
            for attachment in att_result.scalars().all():
                attachments_by_post.setdefault(attachment.post_id, []).append(attachment)

        authors: dict[int, User] = {}
        if author_ids:
            users_result = await self.db.execute(select(User).where(User.id.in_(author_ids)))
            authors = {u.id: u for u in users_result.scalars().all()}

        items = [
            PostItem(
                post=p,
                author=authors.get(p.created_by),
                attachments=attachments_by_post.get(p.id, []),
            )
            for p in posts
        ]

        next_cursor = None
        if has_next and posts:
            last = posts[-1]
            next_cursor = PostCursor(created_at=ensure_utc(last.created_at), id=last.id)
        return PostPage(items=items, next_cursor=next_cursor)

    async def delete_post(self, user_id: int, post_id: int, *, now: datetime | None = None) -> None:
        now = now or utcnow()
        result = await self.db.execute(
            select(Post).where(Post.id == post_id, Post.deleted_at.is_(None))
        )
        post = result.scalar_one_or_none()
        # 不区分 “不存在” 和 “不是作者”
        if post is None or post.created_by != user_id:
            raise PostNotFound()

        await self.db.execute(
            update(Attachment)
            .where(Attachment.post_id == post.id, Attachment.deleted_at.is_(None))
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        post.deleted_at = now
        await self.db.commit()
        logger.info("[POST] Post deleted post_id=%s by user_id=%s", post_id, user_id)

    async def register_attachment(
        self,
        user_id: int,
        original_name: str,
        *,
        now: datetime | None = None,
    ) -> Attachment:
        """登记一次上传，返回未挂到帖子上的附件；存储用的文件名由服务端生成。"""
        now = now or utcnow()
        ext = PurePosixPath((original_name or "").strip().replace("\\", "/")).suffix.lower()
        if ext not in ATTACHMENT_EXTENSIONS:
            raise UnsupportedAttachmentType()

        attachment = Attachment(
            filename=f"{uuid.uuid4().hex}{ext}",
            uploaded_by=user_id,
            created_at=now,
        )
        self.db.add(attachment)
        await self.db.commit()
        logger.info("[POST] Attachment registered attachment_id=%s by user_id=%s", attachment.id, user_id)
        return attachment
