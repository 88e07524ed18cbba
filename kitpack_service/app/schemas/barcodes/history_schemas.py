# schemas/barcodes/history_schemas.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from shared.core.schemas import CommonQueryParams
from ...enum.kit_packing_enum import ScanAction


class ScanHistoryOut(BaseModel):
    id: int
    barcode_id: Optional[int] = None
    barcode: str
    action: ScanAction
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    box_barcode: Optional[str] = None
    parent_barcode: Optional[str] = None
    session_id: Optional[str] = None
    action_by: Optional[int] = None
    notes: Optional[str] = None
    action_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScanHistoryListResponse(BaseModel):
    history: List[ScanHistoryOut]
    total: int


class ScanHistoryRequest(CommonQueryParams):
    action: Optional[ScanAction] = None
    barcode: Optional[str] = None
    box_barcode: Optional[str] = None
    session_id: Optional[str] = None
    action_by: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
