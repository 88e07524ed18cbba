# crud/packing/packing_crud.py
from typing import Optional

from sqlalchemy.orm import Session

from shared.core.config import settings
from ...crud.barcodes.barcode_registry import SqlBarcodeRegistry
from ...enum.kit_packing_enum import SessionMode
from ...services.collaborators import ScanContext
from ...services.concurrency import Deadline
from ...services.exceptions import KitNotFound
from ...services.session_coordinator import coordinator
from ...schemas.packing.packing_schemas import (
    BatchScanManyRequest,
    BatchScanRequest,
    BatchStartRequest,
    BoxCompleteRequest,
    BoxScanRequest,
    BoxStartRequest,
)
from .bom_provider import SqlBomProvider
from .session_store import SqlSessionStore


def scan_context(db: Session, actor_id: Optional[int] = None,
                 timeout_seconds: Optional[float] = None) -> ScanContext:
    return ScanContext(
        registry=SqlBarcodeRegistry(db, actor_id),
        bom_provider=SqlBomProvider(db),
        store=SqlSessionStore(db),
        deadline=Deadline(timeout_seconds if timeout_seconds is not None
                          else settings.OPERATION_TIMEOUT_SECONDS),
        actor_id=actor_id,
        commit=db.commit,
        rollback=db.rollback,
    )


def _scan_result(ctx: ScanContext, outcome, session_id: str, mode: SessionMode):
    return {"scan": outcome.as_dict(), "session": coordinator.summarize(ctx, session_id, mode)}


def _started(ctx: ScanContext, session, mode: SessionMode):
    summary = coordinator.summarize(ctx, session.id, mode)
    summary["resumed"] = session.resumed
    return summary


# ---------------- Box packing ----------------

def start_box(db: Session, request: BoxStartRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    session = coordinator.start_session(ctx, kit_id=request.kit_id, box_barcode=request.box_barcode)
    return _started(ctx, session, SessionMode.BOX)


def get_box_requirements(db: Session, kit_id: int):
    tree = SqlBomProvider(db).get_kit_bom(kit_id)
    if tree is None:
        raise KitNotFound(f"Kit {kit_id} not found")
    return {
        "kit_id": tree.kit_id,
        "kit_name": tree.kit_name,
        "components": tree.to_nested(),
        "flattened": [row.as_dict() for row in tree.flatten()],
    }


def get_box_status(db: Session, box_barcode: str):
    ctx = scan_context(db)
    return coordinator.summarize(ctx, box_barcode, SessionMode.BOX)


def scan_into_box(db: Session, request: BoxScanRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    outcome = coordinator.scan(ctx, request.box_barcode, request.barcode, SessionMode.BOX)
    return _scan_result(ctx, outcome, request.box_barcode, SessionMode.BOX)


def preview_box_scan(db: Session, request: BoxScanRequest):
    ctx = scan_context(db)
    return coordinator.classify_preview(ctx, request.box_barcode, request.barcode, SessionMode.BOX).as_dict()


def remove_from_box(db: Session, request: BoxScanRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    return coordinator.remove_item(ctx, request.box_barcode, request.barcode, SessionMode.BOX)


def complete_box(db: Session, request: BoxCompleteRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    return coordinator.complete(ctx, request.box_barcode, SessionMode.BOX).summary()


def unbox_item(db: Session, request: BoxScanRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    coordinator.unbox_item(ctx, request.box_barcode, request.barcode)
    return coordinator.summarize(ctx, request.box_barcode, SessionMode.BOX)


# ---------------- Flat scan batches ----------------

def start_batch(db: Session, request: BatchStartRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    session = coordinator.start_session(ctx, batch_id=request.batch_id)
    return _started(ctx, session, SessionMode.BATCH)


def get_batch(db: Session, batch_id: str):
    ctx = scan_context(db)
    return coordinator.summarize(ctx, batch_id, SessionMode.BATCH)


def scan_into_batch(db: Session, batch_id: str, request: BatchScanRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    outcome = coordinator.scan(ctx, batch_id, request.barcode, SessionMode.BATCH)
    return _scan_result(ctx, outcome, batch_id, SessionMode.BATCH)


def scan_many_into_batch(db: Session, batch_id: str, request: BatchScanManyRequest,
                         actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    results = coordinator.scan_many(ctx, batch_id, request.barcodes, SessionMode.BATCH)
    return {
        "results": results,
        "accepted": sum(1 for item in results if item["accepted"]),
        "rejected": sum(1 for item in results if not item["accepted"]),
        "session": coordinator.summarize(ctx, batch_id, SessionMode.BATCH),
    }


def preview_batch_scan(db: Session, batch_id: str, request: BatchScanRequest):
    ctx = scan_context(db)
    return coordinator.classify_preview(ctx, batch_id, request.barcode, SessionMode.BATCH).as_dict()


def remove_from_batch(db: Session, batch_id: str, request: BatchScanRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    return coordinator.remove_item(ctx, batch_id, request.barcode, SessionMode.BATCH)


def submit_batch(db: Session, batch_id: str, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    return coordinator.complete(ctx, batch_id, SessionMode.BATCH).summary()
