from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, Enum as SAEnum, func
from printgest.core.database import Base

REFUND_REQUEST_STATUSES = ("pending", "approved", "rejected", "processed")


class RefundRequest(Base):
    """ユーザーからの返金申請 (管理者が承認・却下)"""

    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    invoice_id = Column(Integer, nullable=True, comment="対象請求書 (任意)")
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    reason = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SAEnum(*REFUND_REQUEST_STATUSES, name="refund_request_status"), nullable=False, default="pending", index=True)
    admin_id = Column(String(36), nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
