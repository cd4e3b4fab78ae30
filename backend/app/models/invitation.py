from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from ..database import Base


class Invitation(Base):
    """配对邀请表 - 一次性邀请码

    status：pending | accepted | expired | cancelled（非 pending 即终态）
    - expired 在读取时惰性标记，没有后台定时任务
    - 同一用户同时最多一条 pending；新建邀请会把旧的置为 cancelled
    """
    __tablename__ = "invitations"

    id = Column(Integer, primary_key=True, index=True)
    invite_code = Column(String(8), unique=True, nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    relationship_id = Column(Integer, ForeignKey("relationships.id", ondelete="SET NULL"), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
