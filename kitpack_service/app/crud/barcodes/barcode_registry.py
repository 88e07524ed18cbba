# crud/barcodes/barcode_registry.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ...enum.kit_packing_enum import BarcodeStatus, ObjectType, ScanAction
from ...models.barcodes.barcodes import Barcode
from ...models.barcodes.scan_history import ScanHistory
from ...models.kit_catalog.components import Component
from ...services.collaborators import BarcodeRecord, BarcodeRegistry
from ...services.exceptions import UnknownBarcode

STATUS_ACTIONS = {
    (BarcodeStatus.CREATED, BarcodeStatus.SCANNED): ScanAction.SCAN,
    (BarcodeStatus.SCANNED, BarcodeStatus.BOXED): ScanAction.BOX,
    (BarcodeStatus.SCANNED, BarcodeStatus.CREATED): ScanAction.UNSCAN,
    (BarcodeStatus.BOXED, BarcodeStatus.SCANNED): ScanAction.UNBOX,
}


def to_record(db: Session, row: Barcode) -> BarcodeRecord:
    component = None
    if row.object_type == ObjectType.COMPONENT:
        component = db.get(Component, row.object_id)
    category = component.category if component else None
    return BarcodeRecord(
        id=row.id,
        value=row.barcode,
        object_type=ObjectType(row.object_type),
        object_id=row.object_id,
        status=BarcodeStatus(row.status),
        component_id=component.id if component else None,
        component_name=component.name if component else "",
        category_id=category.id if category else None,
        category_name=category.name if category else "",
        parent_barcode=row.parent.barcode if row.parent else None,
        box_barcode=row.box.barcode if row.box else None,
        session_id=row.session_id,
        scanned_by=row.scanned_by,
        created_at=row.created_at,
        scanned_at=row.scanned_at,
        boxed_at=row.boxed_at,
    )


class SqlBarcodeRegistry(BarcodeRegistry):
    """Barcode registry over the ``barcodes`` table.

    Every status or link change also writes a ``scan_history`` row. Changes
    are flushed, never committed; the caller owns the transaction.
    """

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id

    def _row(self, barcode_value: str) -> Optional[Barcode]:
        return self.db.query(Barcode).filter(Barcode.barcode == barcode_value).first()

    def _require(self, barcode_value: str) -> Barcode:
        row = self._row(barcode_value)
        if row is None:
            raise UnknownBarcode(f"Barcode {barcode_value} not found", barcode=barcode_value)
        return row

    def _history(self, row: Barcode, action: ScanAction, old_status=None, new_status=None,
                 actor_id: Optional[int] = None, timestamp: Optional[datetime] = None, notes: str = None):
        self.db.add(ScanHistory(
            barcode_id=row.id,
            barcode=row.barcode,
            action=action,
            old_status=getattr(old_status, "value", old_status),
            new_status=getattr(new_status, "value", new_status),
            box_barcode=row.box.barcode if row.box else None,
            parent_barcode=row.parent.barcode if row.parent else None,
            session_id=row.session_id,
            action_by=actor_id if actor_id is not None else self.actor_id,
            action_time=timestamp or datetime.utcnow(),
            notes=notes,
        ))

    def resolve(self, barcode_value: str) -> Optional[BarcodeRecord]:
        row = self._row(barcode_value)
        return to_record(self.db, row) if row else None

    def set_status(self, barcode_value: str, new_status: BarcodeStatus,
                   actor_id: Optional[int], timestamp: datetime) -> BarcodeRecord:
        row = self._require(barcode_value)
        old_status = BarcodeStatus(row.status)
        new_status = BarcodeStatus(new_status)

        row.status = new_status
        if old_status == BarcodeStatus.CREATED and new_status == BarcodeStatus.SCANNED:
            row.scanned_at = timestamp
            row.scanned_by = actor_id
        elif new_status == BarcodeStatus.CREATED:
            row.scanned_at = None
            row.scanned_by = None
        elif new_status == BarcodeStatus.BOXED:
            row.boxed_at = timestamp
        elif old_status == BarcodeStatus.BOXED:
            row.boxed_at = None

        self._history(row, STATUS_ACTIONS[(old_status, new_status)], old_status, new_status,
                      actor_id, timestamp)
        self.db.flush()
        return to_record(self.db, row)

    def link_parent(self, barcode_value: str, parent_barcode: Optional[str]) -> None:
        row = self._require(barcode_value)
        if parent_barcode is None:
            if row.parent is None:
                return
            self._history(row, ScanAction.UNLINK_PARENT, notes=f"Unlinked from {row.parent.barcode}")
            row.parent = None
        else:
            row.parent = self._require(parent_barcode)
            self._history(row, ScanAction.LINK_PARENT, notes=f"Linked to {parent_barcode}")
        self.db.flush()

    def link_box(self, barcode_value: str, box_barcode: Optional[str]) -> None:
        row = self._require(barcode_value)
        if box_barcode is None:
            if row.box is None:
                return
            self._history(row, ScanAction.UNPACK, notes=f"Removed from box {row.box.barcode}")
            row.box = None
        else:
            row.box = self._require(box_barcode)
            self._history(row, ScanAction.PACK, notes=f"Packed into box {box_barcode}")
        self.db.flush()

    def link_session(self, barcode_value: str, session_id: Optional[str]) -> None:
        row = self._require(barcode_value)
        row.session_id = session_id
        self.db.flush()

    def list_by_object(self, object_type: ObjectType, object_id: int,
                       status: Optional[BarcodeStatus] = None) -> List[BarcodeRecord]:
        query = self.db.query(Barcode).filter(
            Barcode.object_type == object_type,
            Barcode.object_id == object_id,
        )
        if status is not None:
            query = query.filter(Barcode.status == status)
        return [to_record(self.db, row) for row in query.order_by(Barcode.id).all()]

    def list_by_box(self, box_barcode: str) -> List[BarcodeRecord]:
        box = self._row(box_barcode)
        if box is None:
            return []
        rows = self.db.query(Barcode).filter(Barcode.box_barcode_id == box.id).order_by(Barcode.id).all()
        return [to_record(self.db, row) for row in rows]

    def list_by_session(self, session_id: str) -> List[BarcodeRecord]:
        rows = self.db.query(Barcode).filter(Barcode.session_id == session_id).order_by(Barcode.id).all()
        return [to_record(self.db, row) for row in rows]

    def list_children(self, parent_barcode: str) -> List[BarcodeRecord]:
        parent = self._row(parent_barcode)
        if parent is None:
            return []
        rows = self.db.query(Barcode).filter(Barcode.parent_barcode_id == parent.id).order_by(Barcode.id).all()
        return [to_record(self.db, row) for row in rows]
