from sqlalchemy import TIMESTAMP, Column, Enum, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import relationship
from shared.core.database import Base
from ...enum.kit_packing_enum import BarcodeStatus, ObjectType


class Barcode(Base):
    __tablename__ = "barcodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    barcode = Column(String(64), nullable=False, unique=True)
    object_type = Column(
        Enum(ObjectType, name="barcode_object_type_enum", native_enum=False,
             values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    # component id, or kit id for box barcodes
    object_id = Column(Integer, nullable=False)
    status = Column(
        Enum(BarcodeStatus, name="barcode_status_enum", native_enum=False,
             values_callable=lambda x: [e.value for e in x]),
        default=BarcodeStatus.CREATED,
        nullable=False,
    )
    parent_barcode_id = Column(Integer, ForeignKey("barcodes.id"), nullable=True)
    box_barcode_id = Column(Integer, ForeignKey("barcodes.id"), nullable=True)
    session_id = Column(String(64), nullable=True)

    scanned_by = Column(Integer)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    scanned_at = Column(TIMESTAMP(timezone=True), nullable=True)
    boxed_at = Column(TIMESTAMP(timezone=True), nullable=True)

    parent = relationship("Barcode", remote_side=[id], foreign_keys=[parent_barcode_id])
    box = relationship("Barcode", remote_side=[id], foreign_keys=[box_barcode_id])
    history = relationship("ScanHistory", back_populates="barcode_ref")

    __table_args__ = (
        Index("ix_barcodes_object_status", "object_type", "object_id", "status"),
        Index("ix_barcodes_box", "box_barcode_id"),
        Index("ix_barcodes_session", "session_id"),
        Index("ix_barcodes_parent", "parent_barcode_id"),
    )
