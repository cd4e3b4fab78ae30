from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from ..database import Base


class Relationship(Base):
    """关系表 - 两个用户之间的对称配对

    - user1_id 为邀请人，user2_id 为接受人；“对方” 总是相对当前用户解析
    - status：active | pending_deletion | deleted（状态迁移见 services/lifecycle.py）
    - permanent_deletion_at 不落库，始终由 ended_at + 宽限期计算
    - version：乐观锁，ORM 每次 UPDATE 自动校验并 +1
    """
    __tablename__ = "relationships"

    id = Column(Integer, primary_key=True, index=True)
    user1_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    user2_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="active", index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    resume_requested_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    resume_requested_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}

    def has_member(self, user_id: int) -> bool:
        return user_id is not None and user_id in (self.user1_id, self.user2_id)

    def partner_id(self, user_id: int) -> int | None:
        """返回相对 user_id 的另一方；user_id 不是成员时返回 None。"""
        if self.user1_id == user_id:
            return self.user2_id
        if self.user2_id == user_id:
            return self.user1_id
        return None
