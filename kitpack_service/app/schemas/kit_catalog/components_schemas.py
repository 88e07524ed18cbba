# schemas/kit_catalog/components_schemas.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from shared.core.schemas import CommonQueryParams


class ComponentBase(BaseModel):
    name: str
    category_id: int
    part_number: Optional[str] = None
    description: Optional[str] = None


class ComponentCreate(ComponentBase):
    pass


class ComponentOut(ComponentBase):
    id: int
    category_name: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ComponentListResponse(BaseModel):
    components: List[ComponentOut]
    total: int


class ComponentRequest(CommonQueryParams):
    category_id: Optional[int] = None
