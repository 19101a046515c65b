from sqlalchemy import Column, Integer, String, Text, DateTime, Enum as SAEnum, func
from printgest.core.database import Base
from printgest.models.user_subscription import TIER_ENUM

CHANGE_TYPES = ("upgrade", "downgrade", "cancel", "refund", "trial_expired", "same")


class SubscriptionChange(Base):
    """Tier/ステータス変更の監査ログ (追記のみ)"""

    __tablename__ = "subscription_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    admin_id = Column(String(36), nullable=True, comment="操作者 (本人操作・自動処理はNULL)")
    previous_tier = Column(SAEnum(*TIER_ENUM, name="change_previous_tier"), nullable=True)
    new_tier = Column(SAEnum(*TIER_ENUM, name="change_new_tier"), nullable=False)
    change_type = Column(SAEnum(*CHANGE_TYPES, name="subscription_change_type"), nullable=False)
    reason = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)
