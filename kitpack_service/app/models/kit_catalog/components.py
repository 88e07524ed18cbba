from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship
from shared.core.database import Base


class Component(Base):
    __tablename__ = "components"

    id = Column(Integer, primary_key=True, autoincrement=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    name = Column(String(200), nullable=False)
    part_number = Column(String(64))
    description = Column(Text)

    is_deleted = Column(Boolean, default=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    category = relationship("Category", back_populates="components")

    __table_args__ = (
        Index("ix_components_category", "category_id", "is_deleted"),
    )
