from sqlalchemy import Column, Integer, String, DateTime, Enum as SAEnum, UniqueConstraint, func
from printgest.core.database import Base


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    role = Column(SAEnum("admin", "user", name="app_role"), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
