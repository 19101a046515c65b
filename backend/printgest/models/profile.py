from sqlalchemy import Column, String, DateTime, func
from printgest.core.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, comment="IdPのユーザーID")
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    brand_logo_url = Column(String(1000), nullable=True)

    # 論理削除 (本人削除は猶予期間後に完全削除予定)
    deleted_at = Column(DateTime, nullable=True, comment="論理削除日時")
    deleted_by = Column(String(36), nullable=True, comment="削除実行者 (本人または管理者)")
    deletion_reason = Column(String(500), nullable=True)
    scheduled_deletion_at = Column(DateTime, nullable=True, comment="完全削除予定日時")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
