from sqlalchemy import TIMESTAMP, Column, Enum, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship
from shared.core.database import Base
from ...enum.kit_packing_enum import ScanAction


class ScanHistory(Base):
    __tablename__ = "scan_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    barcode_id = Column(Integer, ForeignKey("barcodes.id", ondelete="CASCADE"))
    barcode = Column(String(64), nullable=False)
    action = Column(Enum(ScanAction, name="scan_action_enum", native_enum=False,
                         values_callable=lambda x: [e.value for e in x]), nullable=False)
    old_status = Column(String(20))
    new_status = Column(String(20))
    box_barcode = Column(String(64))
    parent_barcode = Column(String(64))
    session_id = Column(String(64))
    action_by = Column(Integer)
    notes = Column(Text)
    action_time = Column(TIMESTAMP(timezone=True), server_default=func.now())

    barcode_ref = relationship("Barcode", back_populates="history")
