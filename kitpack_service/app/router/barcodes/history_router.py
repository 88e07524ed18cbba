# router/barcodes/history_router.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.database import get_kitpack_db as get_db
from shared.helpers.json_response_helper import success_response

from ...schemas.barcodes.history_schemas import ScanHistoryRequest
from ...crud.barcodes import history_crud as crud

router = APIRouter(prefix="/api/history", tags=["Scan History"])


@router.get("/")
def get_history(params: ScanHistoryRequest = Depends(), db: Session = Depends(get_db)):
    return success_response(crud.get_history(db, params))


@router.get("/statistics")
def get_statistics(params: ScanHistoryRequest = Depends(), db: Session = Depends(get_db)):
    return success_response(crud.get_statistics(db, params))


@router.get("/barcode/{barcode_id}")
def get_barcode_history(barcode_id: int, db: Session = Depends(get_db)):
    return success_response(crud.get_barcode_history(db, barcode_id))
