from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, Enum as SAEnum, func
from printgest.core.database import Base
from printgest.models.user_subscription import TIER_ENUM


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    invoice_number = Column(String(64), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False, comment="返金は負数")
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(
        SAEnum("pending", "paid", "refunded", "cancelled", name="invoice_status"),
        nullable=False,
        default="pending",
    )
    tier = Column(SAEnum(*TIER_ENUM, name="invoice_tier"), nullable=True)
    issued_date = Column(DateTime, nullable=True)
    paid_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
