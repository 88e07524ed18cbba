# crud/packing/session_store.py
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...enum.kit_packing_enum import SessionMode, SessionStatus
from ...models.barcodes.packing_sessions import PackingSession
from ...services.collaborators import SessionRecord, SessionStore
from ...services.exceptions import ConcurrentModification


class SqlSessionStore(SessionStore):
    """Session rows with an optimistic ``version`` check on every write."""

    def __init__(self, db: Session):
        self.db = db

    def load(self, session_id: str) -> Optional[SessionRecord]:
        row = (
            self.db.query(PackingSession)
            .populate_existing()
            .filter(PackingSession.id == session_id)
            .first()
        )
        if row is None:
            return None
        return SessionRecord(
            id=row.id,
            mode=SessionMode(row.mode),
            status=SessionStatus(row.status),
            kit_id=row.kit_id,
            box_barcode=row.box_barcode,
            version=row.version,
            started_by=row.started_by,
            progress=row.progress or {},
            total_scanned=row.total_scanned or 0,
            total_required=row.total_required or 0,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    def save(self, record: SessionRecord, expected_version: int) -> int:
        values = {
            "mode": record.mode,
            "status": record.status,
            "kit_id": record.kit_id,
            "box_barcode": record.box_barcode,
            "progress": record.progress,
            "total_scanned": record.total_scanned,
            "total_required": record.total_required,
            "completed_at": datetime.utcnow() if record.status == SessionStatus.COMPLETE else None,
            "version": expected_version + 1,
        }

        if expected_version == 0 and self.db.get(PackingSession, record.id) is None:
            self.db.add(PackingSession(id=record.id, started_by=record.started_by, **values))
            try:
                self.db.flush()
            except IntegrityError as exc:
                raise ConcurrentModification(
                    f"Session {record.id} was started concurrently", session_id=record.id) from exc
            return values["version"]

        updated = (
            self.db.query(PackingSession)
            .filter(PackingSession.id == record.id, PackingSession.version == expected_version)
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            raise ConcurrentModification(session_id=record.id)
        self.db.flush()
        return values["version"]
