from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship
from shared.core.database import Base


class KitComponent(Base):
    """One BOM node of a kit; ``parent_id`` nests sub-components."""
    __tablename__ = "kit_components"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kit_id = Column(Integer, ForeignKey("kits.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(Integer, ForeignKey("kit_components.id", ondelete="CASCADE"), nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    component_id = Column(Integer, ForeignKey("components.id"), nullable=True)

    required_quantity = Column(Integer, nullable=False, default=1)
    barcode_prefix = Column(String(20))
    is_packet = Column(Boolean, default=False)
    packet_quantity = Column(Integer)
    description = Column(Text)
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    kit = relationship("Kit", back_populates="components")
    category = relationship("Category")
    component = relationship("Component")
    parent = relationship("KitComponent", remote_side=[id], back_populates="children")
    children = relationship("KitComponent", back_populates="parent",
                            order_by="KitComponent.position")

    __table_args__ = (
        Index("ix_kit_components_kit_parent", "kit_id", "parent_id", "position"),
        Index("ix_kit_components_component", "component_id"),
    )
