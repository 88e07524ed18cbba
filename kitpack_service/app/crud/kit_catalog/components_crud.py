# crud/kit_catalog/components_crud.py
from sqlalchemy.orm import Session, joinedload

from shared.helpers.json_response_helper import error_response
from shared.utils.app_status_code import AppStatusCode
from ...models.kit_catalog.categories import Category
from ...models.kit_catalog.components import Component
from ...schemas.kit_catalog.components_schemas import ComponentCreate, ComponentOut, ComponentRequest


def _component_out(component: Component) -> ComponentOut:
    return ComponentOut.model_validate({
        **component.__dict__,
        "category_name": component.category.name if component.category else None,
    })


def get_components(db: Session, params: ComponentRequest):
    query = db.query(Component).filter(Component.is_deleted == False)
    if params.category_id:
        query = query.filter(Component.category_id == params.category_id)
    if params.search:
        query = query.filter(Component.name.ilike(f"%{params.search}%"))
    total = query.count()
    components = (
        query.options(joinedload(Component.category))
        .order_by(Component.name)
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )
    return {"components": [_component_out(component) for component in components], "total": total}


def create_component(db: Session, component: ComponentCreate) -> ComponentOut:
    category = db.query(Category).filter(
        Category.id == component.category_id, Category.is_deleted == False).first()
    if category is None:
        return error_response(
            message=f"Category {component.category_id} not found",
            status_code=AppStatusCode.NOT_FOUND,
            http_status=404,
        )

    row = Component(
        name=component.name.strip(),
        category_id=category.id,
        part_number=component.part_number,
        description=component.description,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _component_out(row)
