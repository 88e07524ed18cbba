# router/barcodes/barcodes_router.py
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.actor import current_actor
from shared.core.database import get_kitpack_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode

from ...schemas.barcodes.barcodes_schemas import (
    BarcodeGenerateRequest,
    BarcodeRequest,
    BarcodeValueRequest,
)
from ...crud.barcodes import barcodes_crud as crud

router = APIRouter(prefix="/api/barcodes", tags=["Barcodes"])


@router.get("/")
def get_barcodes(params: BarcodeRequest = Depends(), db: Session = Depends(get_db)):
    return success_response(crud.get_barcodes(db, params))


@router.post("/generate")
def generate_barcodes(
    request: BarcodeGenerateRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    barcodes = crud.generate_barcodes(db, request, actor_id)
    return success_response(
        barcodes,
        message=f"{len(barcodes)} barcodes generated",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY,
    )


@router.post("/preview-scan")
def preview_scan(request: BarcodeValueRequest, db: Session = Depends(get_db)):
    return success_response(crud.preview_barcode(db, request))


@router.post("/unscan")
def unscan_barcode(
    request: BarcodeValueRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[int] = Depends(current_actor),
):
    return success_response(
        crud.unscan_barcode(db, request, actor_id),
        message="Barcode unscanned",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )


@router.get("/scanned-not-boxed")
def scanned_not_boxed(params: BarcodeRequest = Depends(), db: Session = Depends(get_db)):
    return success_response(crud.get_scanned_not_boxed(db, params))
