from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, func
from printgest.core.database import Base


class GracePeriodNotification(Base):
    """猶予期間マイルストーン通知の送信済み記録 (重複送信防止)"""

    __tablename__ = "grace_period_notifications"
    __table_args__ = (
        UniqueConstraint("user_id", "milestone", "grace_period_end", name="uq_grace_notice_user_milestone"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    milestone = Column(Integer, nullable=False, comment="残り日数 (30/7/1)")
    grace_period_end = Column(DateTime, nullable=False)
    sent_at = Column(DateTime, nullable=False, server_default=func.now())
