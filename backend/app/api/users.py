"""当前用户资料"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import ProfileUpdateRequest, UserInfo
from ..services import ProfileService
from .deps import get_current_user_id

router = APIRouter(prefix="/user", tags=["user"])


@router.patch("", response_model=UserInfo)
async def update_profile(
    body: ProfileUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """修改显示名 / 头像；没传的字段保持不变，传 null 表示清空"""
    changes = body.model_dump(include=body.model_fields_set)
    return await ProfileService(db).update_profile(user_id, changes)
