# schemas/barcodes/barcodes_schemas.py
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from shared.core.schemas import CommonQueryParams
from ...enum.kit_packing_enum import BarcodeStatus, ObjectType


class BarcodeOut(BaseModel):
    id: int
    value: str
    object_type: ObjectType
    object_id: Optional[int] = None
    status: BarcodeStatus
    component_id: Optional[int] = None
    component_name: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    parent_barcode: Optional[str] = None
    box_barcode: Optional[str] = None
    session_id: Optional[str] = None
    scanned_by: Optional[int] = None
    created_at: Optional[datetime] = None
    scanned_at: Optional[datetime] = None
    boxed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BarcodeListResponse(BaseModel):
    barcodes: List[BarcodeOut]
    total: int


class BarcodeRequest(CommonQueryParams):
    status: Optional[BarcodeStatus] = None
    object_type: Optional[ObjectType] = None
    object_id: Optional[int] = None
    box_barcode: Optional[str] = None


class BarcodeGenerateRequest(BaseModel):
    object_type: ObjectType = ObjectType.COMPONENT
    # component id, or kit id for box barcodes
    object_id: int
    quantity: int = Field(1, ge=1, le=500)
    kit_component_id: Optional[int] = None
    prefix: Optional[str] = None


class BarcodeValueRequest(BaseModel):
    barcode: str


class BarcodePreviewOut(BaseModel):
    barcode: BarcodeOut
    allowed_events: List[str] = []
    requires_sub_components: bool = False
    sub_components: List[dict] = []
    linked_children: List[str] = []
