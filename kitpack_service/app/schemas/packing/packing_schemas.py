# schemas/packing/packing_schemas.py
from pydantic import BaseModel, Field
from typing import List, Optional


class BoxStartRequest(BaseModel):
    box_barcode: str
    kit_id: Optional[int] = None


class BoxScanRequest(BaseModel):
    box_barcode: str
    barcode: str


class BoxCompleteRequest(BaseModel):
    box_barcode: str


class BatchStartRequest(BaseModel):
    batch_id: Optional[str] = None


class BatchScanRequest(BaseModel):
    barcode: str


class BatchScanManyRequest(BaseModel):
    barcodes: List[str] = Field(..., min_length=1, max_length=500)
