"""Admin API（需要 Authorization: Bearer ADMIN_TOKEN）"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import CleanupResponse
from ..services import GracePeriodReaper
from .deps import require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/cleanup/relationships", response_model=CleanupResponse)
async def cleanup_relationships(db: AsyncSession = Depends(get_db)):
    """立即执行一轮宽限期清理（与定时任务逻辑相同）"""
    report = await GracePeriodReaper(db).sweep()
    data = report.to_dict()
    return CleanupResponse(
        message=f"Finalized {report.relationships} relationship(s)",
        deleted_count=data["deleted_count"],
        stats=data["stats"],
        errors=data.get("errors"),
    )
