# crud/barcodes/barcodes_crud.py
import logging
import re
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from shared.core.config import settings
from shared.helpers.json_response_helper import error_response
from shared.utils.app_status_code import AppStatusCode
from ...enum.kit_packing_enum import BarcodeStatus, ObjectType, ScanAction
from ...models.barcodes.barcodes import Barcode
from ...models.barcodes.scan_history import ScanHistory
from ...models.kit_catalog.components import Component
from ...models.kit_catalog.kit_components import KitComponent
from ...models.kit_catalog.kits import Kit
from ...schemas.barcodes.barcodes_schemas import (
    BarcodeGenerateRequest,
    BarcodeOut,
    BarcodePreviewOut,
    BarcodeRequest,
    BarcodeValueRequest,
)
from ...services.barcode_state import allowed_events
from ...services.exceptions import ConcurrentModification, KitNotFound, UnknownBarcode
from ...services.session_coordinator import coordinator
from ..packing.bom_provider import SqlBomProvider
from ..packing.packing_crud import scan_context
from .barcode_registry import SqlBarcodeRegistry, to_record

logger = logging.getLogger(__name__)

GENERATE_ATTEMPTS = 3


def _barcode_out(db: Session, row: Barcode) -> BarcodeOut:
    return BarcodeOut.model_validate(asdict(to_record(db, row)))


def _next_sequence(db: Session, prefix: str) -> int:
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    values = db.query(Barcode.barcode).filter(Barcode.barcode.like(f"{prefix}%")).all()
    highest = 0
    for (value,) in values:
        match = pattern.match(value)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1


def _insert_barcodes(db: Session, request: BarcodeGenerateRequest, prefix: str, now: datetime):
    sequence = _next_sequence(db, prefix)
    rows = []
    for offset in range(request.quantity):
        row = Barcode(
            barcode=f"{prefix}{sequence + offset:0{settings.BARCODE_SEQUENCE_WIDTH}d}",
            object_type=request.object_type,
            object_id=request.object_id,
            status=BarcodeStatus.CREATED,
            created_at=now,
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return rows


def _component_prefix(db: Session, component: Component, kit_component_id: Optional[int]) -> str:
    if kit_component_id is not None:
        node = db.query(KitComponent).filter(KitComponent.id == kit_component_id).first()
        if node is not None and node.barcode_prefix:
            return node.barcode_prefix
    category = component.category
    if category is not None and category.barcode_prefix:
        return category.barcode_prefix
    name = category.name if category is not None else component.name
    letters = re.sub(r"[^A-Za-z0-9]", "", name).upper()[:3]
    return f"{letters or 'CMP'}-"


# ---------------- Generate ----------------

def generate_barcodes(db: Session, request: BarcodeGenerateRequest, actor_id: Optional[int] = None):
    if request.object_type == ObjectType.BOX:
        kit = db.query(Kit).filter(Kit.id == request.object_id, Kit.is_deleted == False).first()
        if kit is None:
            raise KitNotFound(f"Kit {request.object_id} not found")
        prefix = request.prefix or settings.BOX_BARCODE_PREFIX
    else:
        component = db.query(Component).filter(
            Component.id == request.object_id, Component.is_deleted == False).first()
        if component is None:
            return error_response(
                message=f"Component {request.object_id} not found",
                status_code=AppStatusCode.NOT_FOUND,
                http_status=404,
            )
        prefix = request.prefix or _component_prefix(db, component, request.kit_component_id)

    now = datetime.utcnow()
    rows = None
    for attempt in range(1, GENERATE_ATTEMPTS + 1):
        try:
            rows = _insert_barcodes(db, request, prefix, now)
            break
        except IntegrityError:
            # another request took the same sequence numbers
            db.rollback()
            logger.info("Barcode sequence for prefix %s taken concurrently (attempt %s)", prefix, attempt)
    if rows is None:
        raise ConcurrentModification(
            f"Barcodes with prefix {prefix} are being generated concurrently, retry", prefix=prefix)

    for row in rows:
        db.add(ScanHistory(
            barcode_id=row.id,
            barcode=row.barcode,
            action=ScanAction.GENERATE,
            new_status=BarcodeStatus.CREATED.value,
            action_by=actor_id,
            action_time=now,
        ))
    db.commit()
    logger.info("Generated %s %s barcodes with prefix %s", len(rows), request.object_type.value, prefix)
    return [_barcode_out(db, row) for row in rows]


# ---------------- Get All ----------------

def get_barcodes(db: Session, params: BarcodeRequest):
    query = db.query(Barcode)
    if params.status:
        query = query.filter(Barcode.status == params.status)
    if params.object_type:
        query = query.filter(Barcode.object_type == params.object_type)
    if params.object_id is not None:
        query = query.filter(Barcode.object_id == params.object_id)
    if params.box_barcode:
        box = aliased(Barcode)
        query = query.join(box, Barcode.box_barcode_id == box.id).filter(box.barcode == params.box_barcode)
    if params.search:
        query = query.filter(Barcode.barcode.ilike(f"%{params.search}%"))

    total = query.count()
    rows = query.order_by(Barcode.id.desc()).offset(params.skip).limit(params.limit).all()
    return {"barcodes": [_barcode_out(db, row) for row in rows], "total": total}


def get_scanned_not_boxed(db: Session, params: BarcodeRequest):
    """Component barcodes scanned but not yet packed into any box."""
    query = db.query(Barcode).filter(
        Barcode.object_type == ObjectType.COMPONENT,
        Barcode.status == BarcodeStatus.SCANNED,
        Barcode.box_barcode_id.is_(None),
    )
    if params.object_id is not None:
        query = query.filter(Barcode.object_id == params.object_id)
    if params.search:
        query = query.filter(Barcode.barcode.ilike(f"%{params.search}%"))

    total = query.count()
    rows = query.order_by(Barcode.scanned_at.desc(), Barcode.id.desc()).offset(params.skip).limit(params.limit).all()
    return {"barcodes": [_barcode_out(db, row) for row in rows], "total": total}


# ---------------- Preview / Unscan ----------------

def preview_barcode(db: Session, request: BarcodeValueRequest) -> BarcodePreviewOut:
    registry = SqlBarcodeRegistry(db)
    record = registry.resolve(request.barcode)
    if record is None:
        raise UnknownBarcode(f"Barcode {request.barcode} not found", barcode=request.barcode)

    sub_components = []
    if record.component_id is not None:
        template = SqlBomProvider(db).get_component_template(record.component_id)
        if template is not None:
            sub_components = [row.as_dict() for row in template.flatten() if row.level > 1]

    return BarcodePreviewOut(
        barcode=BarcodeOut.model_validate(asdict(record)),
        allowed_events=[event.value for event in allowed_events(record.status)],
        requires_sub_components=bool(sub_components),
        sub_components=sub_components,
        linked_children=[child.value for child in registry.list_children(record.value)],
    )


def unscan_barcode(db: Session, request: BarcodeValueRequest, actor_id: Optional[int] = None):
    ctx = scan_context(db, actor_id)
    return coordinator.unscan_barcode(ctx, request.barcode)
