# schemas/kit_catalog/kits_schemas.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from shared.core.schemas import CommonQueryParams


class KitComponentBase(BaseModel):
    category_id: int
    component_id: Optional[int] = None
    required_quantity: int = Field(1, ge=1)
    barcode_prefix: Optional[str] = None
    is_packet: bool = False
    packet_quantity: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None


class KitComponentCreate(KitComponentBase):
    children: List["KitComponentCreate"] = []


KitComponentCreate.model_rebuild()


class KitComponentAdd(KitComponentCreate):
    kit_id: int


class KitComponentUpdate(BaseModel):
    id: int
    required_quantity: Optional[int] = Field(None, ge=1)
    barcode_prefix: Optional[str] = None
    is_packet: Optional[bool] = None
    packet_quantity: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None


class KitBase(BaseModel):
    name: str
    description: Optional[str] = None


class KitCreate(KitBase):
    components: List[KitComponentCreate] = []


class KitOut(KitBase):
    id: int
    created_at: Optional[datetime] = None
    component_count: int = 0
    locked: bool = False

    class Config:
        from_attributes = True


class KitDetailOut(KitOut):
    components: List[Dict[str, Any]] = []
    flattened: List[Dict[str, Any]] = []


class KitListResponse(BaseModel):
    kits: List[KitOut]
    total: int


class KitRequest(CommonQueryParams):
    pass
