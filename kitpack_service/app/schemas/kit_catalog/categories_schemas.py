# schemas/kit_catalog/categories_schemas.py
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from shared.core.schemas import CommonQueryParams


class CategoryBase(BaseModel):
    name: str
    description: Optional[str] = None
    barcode_prefix: Optional[str] = None


class CategoryCreate(CategoryBase):
    pass


class CategoryOut(CategoryBase):
    id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CategoryListResponse(BaseModel):
    categories: List[CategoryOut]
    total: int


class CategoryRequest(CommonQueryParams):
    pass
