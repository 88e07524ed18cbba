# crud/kit_catalog/categories_crud.py
from sqlalchemy import func
from sqlalchemy.orm import Session

from shared.helpers.json_response_helper import error_response
from shared.utils.app_status_code import AppStatusCode
from ...models.kit_catalog.categories import Category
from ...schemas.kit_catalog.categories_schemas import CategoryCreate, CategoryOut, CategoryRequest


def get_categories(db: Session, params: CategoryRequest):
    query = db.query(Category).filter(Category.is_deleted == False)
    if params.search:
        query = query.filter(Category.name.ilike(f"%{params.search}%"))
    total = query.count()
    categories = query.order_by(Category.name).offset(params.skip).limit(params.limit).all()
    return {
        "categories": [CategoryOut.model_validate(category) for category in categories],
        "total": total,
    }


def create_category(db: Session, category: CategoryCreate) -> CategoryOut:
    existing = db.query(Category).filter(
        func.lower(Category.name) == category.name.strip().lower(),
        Category.is_deleted == False,
    ).first()
    if existing:
        return error_response(
            message=f"Category '{category.name}' already exists",
            status_code=AppStatusCode.DUPLICATE_ENTRY,
        )

    row = Category(
        name=category.name.strip(),
        description=category.description,
        barcode_prefix=category.barcode_prefix,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return CategoryOut.model_validate(row)
