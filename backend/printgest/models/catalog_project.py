from sqlalchemy import Column, Integer, String, DateTime, func
from printgest.core.database import Base


class CatalogProject(Base):
    __tablename__ = "catalog_projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True, comment="カタログ所有者")
    name = Column(String(255), nullable=False)
    image_url = Column(String(1000), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
