from sqlalchemy import TIMESTAMP, Boolean, Column, Integer, String, Text, func
from sqlalchemy.orm import relationship
from shared.core.database import Base


class Kit(Base):
    __tablename__ = "kits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True)
    description = Column(Text)

    is_deleted = Column(Boolean, default=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    components = relationship(
        "KitComponent",
        back_populates="kit",
        order_by="KitComponent.position",
        cascade="all, delete-orphan",
    )
