from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SAEnum, func
from printgest.core.database import Base

TIER_ENUM = ("free", "tier_1", "tier_2")


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), unique=True, nullable=False, index=True)
    tier = Column(SAEnum(*TIER_ENUM, name="subscription_tier"), nullable=False, default="free")
    status = Column(
        SAEnum("active", "trial", "cancelled", "expired", name="subscription_status"),
        nullable=False,
        default="active",
    )
    expires_at = Column(DateTime, nullable=True, comment="トライアル/有料期間の終了日時")

    # 猶予期間 (有料→無料ダウングレード後の読み取り専用期間)
    previous_tier = Column(SAEnum(*TIER_ENUM, name="subscription_previous_tier"), nullable=True, comment="ダウングレード直前のTier")
    downgrade_date = Column(DateTime, nullable=True, comment="ダウングレード日時")
    grace_period_end = Column(DateTime, nullable=True, index=True, comment="画像削除対象になる日時")
    is_read_only = Column(Boolean, nullable=False, default=False)

    # Stripe連携
    stripe_subscription_id = Column(String(255), nullable=True, unique=True)
    stripe_customer_id = Column(String(255), nullable=True)
    billing_period = Column(SAEnum("monthly", "annual", name="billing_period"), nullable=True)
    next_billing_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
