from pydantic import BaseModel
from typing import Any, Dict, Generic, List, Optional, TypeVar

# Shared properties
T = TypeVar("T")


class CommonQueryParams(BaseModel):
    search: Optional[str] = None
    skip: Optional[int] = 0
    limit: Optional[int] = 100


class JsonOutResult(BaseModel, Generic[T]):
    data: Optional[T] = None
    status: str
    status_code: str
    message: str


class CountByKey(BaseModel):
    key: str
    count: int


class StatisticsOut(BaseModel):
    total: int
    by_action: List[CountByKey] = []
    by_status: List[CountByKey] = []
    filters: Dict[str, Any] = {}
