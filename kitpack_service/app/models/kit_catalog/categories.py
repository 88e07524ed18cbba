from sqlalchemy import TIMESTAMP, Boolean, Column, Integer, String, Text, func
from sqlalchemy.orm import relationship
from shared.core.database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False, unique=True)
    description = Column(Text)
    # used for generated barcodes when the kit node has no prefix of its own
    barcode_prefix = Column(String(20))

    is_deleted = Column(Boolean, default=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    components = relationship("Component", back_populates="category")
