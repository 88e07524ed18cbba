# router/kit_catalog/categories_router.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.database import get_kitpack_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode

from ...schemas.kit_catalog.categories_schemas import CategoryCreate, CategoryRequest
from ...crud.kit_catalog import categories_crud as crud

router = APIRouter(prefix="/api/categories", tags=["Categories"])


@router.get("/")
def get_categories(params: CategoryRequest = Depends(), db: Session = Depends(get_db)):
    return success_response(crud.get_categories(db, params))


@router.post("/")
def create_category(category: CategoryCreate, db: Session = Depends(get_db)):
    return success_response(
        crud.create_category(db, category),
        message="Category created successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY,
    )
