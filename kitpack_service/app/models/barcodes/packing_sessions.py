from sqlalchemy import JSON, TIMESTAMP, Column, Enum, ForeignKey, Integer, String, func
from shared.core.database import Base
from ...enum.kit_packing_enum import SessionMode, SessionStatus


class PackingSession(Base):
    """Cached state of a box packing session or a flat scan batch.

    Barcodes stay the source of truth; a lost row is rebuilt from them.
    """
    __tablename__ = "packing_sessions"

    id = Column(String(64), primary_key=True)
    mode = Column(Enum(SessionMode, name="session_mode_enum", native_enum=False,
                       values_callable=lambda x: [e.value for e in x]), nullable=False)
    status = Column(Enum(SessionStatus, name="session_status_enum", native_enum=False,
                         values_callable=lambda x: [e.value for e in x]),
                    default=SessionStatus.OPEN, nullable=False)
    kit_id = Column(Integer, ForeignKey("kits.id"), nullable=True)
    box_barcode = Column(String(64))
    version = Column(Integer, nullable=False, default=0)
    started_by = Column(Integer)
    progress = Column(JSON)
    total_scanned = Column(Integer, default=0)
    total_required = Column(Integer, default=0)

    started_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    completed_at = Column(TIMESTAMP(timezone=True), nullable=True)
    updated_at = Column(TIMESTAMP(timezone=True),
                        server_default=func.now(), onupdate=func.now())
