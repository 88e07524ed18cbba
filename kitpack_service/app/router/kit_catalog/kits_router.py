# router/kit_catalog/kits_router.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shared.core.database import get_kitpack_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode

from ...schemas.kit_catalog.kits_schemas import (
    KitComponentAdd,
    KitComponentCreate,
    KitComponentUpdate,
    KitCreate,
    KitRequest,
)
from ...crud.kit_catalog import kits_crud as crud

router = APIRouter(prefix="/api/kits", tags=["Kits"])


# ---------------- Get All ----------------
@router.get("/")
def get_kits(params: KitRequest = Depends(), db: Session = Depends(get_db)):
    return success_response(crud.get_kits(db, params))


# ---------------- Create ----------------
@router.post("/")
def create_kit(kit: KitCreate, db: Session = Depends(get_db)):
    return success_response(
        crud.create_kit(db, kit),
        message="Kit created successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY,
    )


# ---------------- Components ----------------
@router.post("/components")
def add_kit_component(request: KitComponentAdd, db: Session = Depends(get_db)):
    return success_response(
        crud.add_kit_component(db, request),
        message="Component added to kit",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY,
    )


@router.put("/components")
def update_kit_component(request: KitComponentUpdate, db: Session = Depends(get_db)):
    return success_response(
        crud.update_kit_component(db, request),
        message="Kit component updated",
        status_code=AppStatusCode.OPERATION_SUCCESSFUL,
    )


@router.post("/{kit_id}/components/{requirement_id}/sub-components")
def add_sub_component(
    kit_id: int,
    requirement_id: int,
    request: KitComponentCreate,
    db: Session = Depends(get_db),
):
    return success_response(
        crud.add_sub_component(db, kit_id, requirement_id, request),
        message="Sub-component added",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY,
    )


@router.delete("/{kit_id}/components/{requirement_id}")
def remove_kit_component(
    kit_id: int,
    requirement_id: int,
    delete_component: bool = Query(False),
    db: Session = Depends(get_db),
):
    result = crud.remove_kit_component(db, kit_id, requirement_id, delete_component)
    message = "Component deleted" if result["component_deleted"] else "Component removed from kit"
    return success_response(result, message=message, status_code=AppStatusCode.OPERATION_SUCCESSFUL)


# ---------------- Get By ID ----------------
@router.get("/{kit_id}")
def get_kit(kit_id: int, db: Session = Depends(get_db)):
    return success_response(crud.get_kit(db, kit_id))
