"""附件登记（只记元数据，文件本体由对象存储处理）"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import AttachmentCreateRequest, AttachmentResponse
from ..services import PostService
from .deps import get_current_user_id

router = APIRouter(prefix="/attachments", tags=["attachments"])


@router.post("", response_model=AttachmentResponse, status_code=201)
async def register_attachment(
    body: AttachmentCreateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """返回附件 id，发帖时通过 attachment_ids 挂到帖子上"""
    return await PostService(db).register_attachment(user_id, body.filename)
