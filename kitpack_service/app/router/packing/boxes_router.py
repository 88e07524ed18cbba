# router/packing/boxes_router.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shared.core.actor import current_actor
from shared.core.database import get_kitpack_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode

from ...schemas.packing.packing_schemas import BoxCompleteRequest, BoxScanRequest, BoxStartRequest
from ...crud.packing import packing_crud as crud

router = APIRouter(prefix="/api/boxes", tags=["Box Packing"])


@router.post("/start")
def start_box(
    request: BoxStartRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    session = crud.start_box(db, request, actor_id)
    message = "Box session resumed" if session["resumed"] else "Box session started"
    return success_response(session, message=message, status_code=AppStatusCode.OPERATION_SUCCESSFUL)


@router.get("/requirements/{kit_id}")
def get_requirements(kit_id: int, db: Session = Depends(get_db)):
    return success_response(crud.get_box_requirements(db, kit_id))


@router.get("/status")
def get_box_status(box_barcode: str = Query(...), db: Session = Depends(get_db)):
    return success_response(crud.get_box_status(db, box_barcode))


@router.post("/scan")
def scan_item(
    request: BoxScanRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    result = crud.scan_into_box(db, request, actor_id)
    message = "Already scanned" if result["scan"]["duplicate"] else "Item scanned"
    return success_response(result, message=message, status_code=AppStatusCode.OPERATION_SUCCESSFUL)


@router.post("/preview")
def preview_scan(request: BoxScanRequest, db: Session = Depends(get_db)):
    return success_response(crud.preview_box_scan(db, request))


@router.post("/remove-item")
def remove_item(
    request: BoxScanRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    return success_response(
        crud.remove_from_box(db, request, actor_id),
        message="Item removed from box",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )


@router.post("/complete")
def complete_box(
    request: BoxCompleteRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    return success_response(
        crud.complete_box(db, request, actor_id),
        message="Box completed",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )


@router.post("/unbox-item")
def unbox_item(
    request: BoxScanRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    return success_response(
        crud.unbox_item(db, request, actor_id),
        message="Item taken out of box",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )
