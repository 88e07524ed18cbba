# crud/barcodes/history_crud.py
from sqlalchemy import func
from sqlalchemy.orm import Session

from shared.core.schemas import CountByKey, StatisticsOut
from shared.helpers.json_response_helper import error_response
from shared.utils.app_status_code import AppStatusCode
from ...models.barcodes.barcodes import Barcode
from ...models.barcodes.scan_history import ScanHistory
from ...schemas.barcodes.history_schemas import ScanHistoryOut, ScanHistoryRequest


# ---------------- Build Filters ----------------
def build_history_filters(params: ScanHistoryRequest):
    filters = []
    if params.action:
        filters.append(ScanHistory.action == params.action)
    if params.barcode:
        filters.append(ScanHistory.barcode == params.barcode)
    if params.box_barcode:
        filters.append(ScanHistory.box_barcode == params.box_barcode)
    if params.session_id:
        filters.append(ScanHistory.session_id == params.session_id)
    if params.action_by is not None:
        filters.append(ScanHistory.action_by == params.action_by)
    if params.date_from:
        filters.append(ScanHistory.action_time >= params.date_from)
    if params.date_to:
        filters.append(ScanHistory.action_time <= params.date_to)
    if params.search:
        filters.append(ScanHistory.barcode.ilike(f"%{params.search}%"))
    return filters


def get_history(db: Session, params: ScanHistoryRequest):
    query = db.query(ScanHistory).filter(*build_history_filters(params))
    total = query.count()
    rows = (
        query.order_by(ScanHistory.action_time.desc(), ScanHistory.id.desc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )
    return {"history": [ScanHistoryOut.model_validate(row) for row in rows], "total": total}


def get_statistics(db: Session, params: ScanHistoryRequest) -> StatisticsOut:
    filters = build_history_filters(params)
    total = db.query(func.count(ScanHistory.id)).filter(*filters).scalar() or 0

    by_action = (
        db.query(ScanHistory.action, func.count(ScanHistory.id))
        .filter(*filters)
        .group_by(ScanHistory.action)
        .all()
    )
    by_status = (
        db.query(Barcode.status, func.count(Barcode.id))
        .group_by(Barcode.status)
        .all()
    )
    return StatisticsOut(
        total=total,
        by_action=[CountByKey(key=getattr(action, "value", action), count=count) for action, count in by_action],
        by_status=[CountByKey(key=getattr(status, "value", status), count=count) for status, count in by_status],
        filters=params.model_dump(exclude_none=True, exclude={"skip", "limit"}, mode="json"),
    )


def get_barcode_history(db: Session, barcode_id: int):
    barcode = db.query(Barcode).filter(Barcode.id == barcode_id).first()
    if barcode is None:
        return error_response(
            message=f"Barcode {barcode_id} not found",
            status_code=AppStatusCode.NOT_FOUND,
            http_status=404,
        )
    rows = (
        db.query(ScanHistory)
        .filter(ScanHistory.barcode_id == barcode_id)
        .order_by(ScanHistory.action_time, ScanHistory.id)
        .all()
    )
    return {
        "barcode": barcode.barcode,
        "status": barcode.status,
        "history": [ScanHistoryOut.model_validate(row) for row in rows],
    }
