# router/kit_catalog/components_router.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.database import get_kitpack_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode

from ...schemas.kit_catalog.components_schemas import ComponentCreate, ComponentRequest
from ...crud.kit_catalog import components_crud as crud

router = APIRouter(prefix="/api/components", tags=["Components"])


@router.get("/")
def get_components(params: ComponentRequest = Depends(), db: Session = Depends(get_db)):
    return success_response(crud.get_components(db, params))


@router.post("/")
def create_component(component: ComponentCreate, db: Session = Depends(get_db)):
    return success_response(
        crud.create_component(db, component),
        message="Component created successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY,
    )
