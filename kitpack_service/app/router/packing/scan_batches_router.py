# router/packing/scan_batches_router.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.actor import current_actor
from shared.core.database import get_kitpack_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode

from ...schemas.packing.packing_schemas import BatchScanManyRequest, BatchScanRequest, BatchStartRequest
from ...crud.packing import packing_crud as crud

router = APIRouter(prefix="/api/scans/batches", tags=["Component Scan"])


@router.post("")
def start_batch(
    request: BatchStartRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    batch = crud.start_batch(db, request, actor_id)
    message = "Scan batch resumed" if batch["resumed"] else "Scan batch started"
    return success_response(batch, message=message, status_code=AppStatusCode.OPERATION_SUCCESSFUL)


@router.get("/{batch_id}")
def get_batch(batch_id: str, db: Session = Depends(get_db)):
    return success_response(crud.get_batch(db, batch_id))


@router.post("/{batch_id}/scan")
def scan_component(
    batch_id: str,
    request: BatchScanRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    result = crud.scan_into_batch(db, batch_id, request, actor_id)
    message = "Already scanned" if result["scan"]["duplicate"] else "Component scanned"
    return success_response(result, message=message, status_code=AppStatusCode.OPERATION_SUCCESSFUL)


@router.post("/{batch_id}/scan-many")
def scan_many(
    batch_id: str,
    request: BatchScanManyRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    result = crud.scan_many_into_batch(db, batch_id, request, actor_id)
    return success_response(
        result,
        message=f"{result['accepted']} scanned, {result['rejected']} rejected",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )


@router.post("/{batch_id}/preview")
def preview_scan(batch_id: str, request: BatchScanRequest, db: Session = Depends(get_db)):
    return success_response(crud.preview_batch_scan(db, batch_id, request))


@router.post("/{batch_id}/remove-item")
def remove_item(
    batch_id: str,
    request: BatchScanRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    return success_response(
        crud.remove_from_batch(db, batch_id, request, actor_id),
        message="Scan removed",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )


@router.post("/{batch_id}/submit")
def submit_batch(
    batch_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    return success_response(
        crud.submit_batch(db, batch_id, actor_id),
        message="Scan batch submitted",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )
