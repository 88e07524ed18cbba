# crud/kit_catalog/kits_crud.py
import itertools
import logging
from typing import Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from shared.helpers.json_response_helper import error_response
from shared.utils.app_status_code import AppStatusCode
from ...enum.kit_packing_enum import BarcodeStatus, ObjectType
from ...models.kit_catalog.categories import Category
from ...models.kit_catalog.components import Component
from ...models.kit_catalog.kit_components import KitComponent
from ...models.kit_catalog.kits import Kit
from ...schemas.kit_catalog.kits_schemas import (
    KitComponentAdd,
    KitComponentCreate,
    KitComponentUpdate,
    KitCreate,
    KitDetailOut,
    KitOut,
    KitRequest,
)
from ...services.bom_tree import BomTree, RequirementNode
from ...services.exceptions import BomValidationError, KitLocked, KitNotFound
from ..barcodes.barcode_registry import SqlBarcodeRegistry
from ..packing.bom_provider import kit_tree_from_rows, load_kit_rows

logger = logging.getLogger(__name__)


# ---------------- Helpers ----------------

def get_kit_row(db: Session, kit_id: int) -> Kit:
    kit = db.query(Kit).filter(Kit.id == kit_id, Kit.is_deleted == False).first()
    if kit is None:
        raise KitNotFound(f"Kit {kit_id} not found")
    return kit


def open_boxes_for_kit(db: Session, kit_id: int) -> List[str]:
    records = SqlBarcodeRegistry(db).list_by_object(ObjectType.BOX, kit_id, BarcodeStatus.SCANNED)
    return [record.value for record in records]


def ensure_kit_unlocked(db: Session, kit_id: int):
    boxes = open_boxes_for_kit(db, kit_id)
    if boxes:
        raise KitLocked(
            f"Kit {kit_id} is being packed in {', '.join(boxes)}; complete those boxes before editing its components",
            boxes=boxes,
        )


def _load_tree(db: Session, kit: Kit) -> BomTree:
    return kit_tree_from_rows(kit, load_kit_rows(db, kit.id))


def _to_node(db: Session, item: KitComponentCreate, node_id) -> RequirementNode:
    category = db.query(Category).filter(Category.id == item.category_id, Category.is_deleted == False).first()
    if category is None:
        raise BomValidationError(f"Category {item.category_id} not found")

    component = None
    if item.component_id is not None:
        component = db.query(Component).filter(
            Component.id == item.component_id, Component.is_deleted == False).first()
        if component is None:
            raise BomValidationError(f"Component {item.component_id} not found")
        if component.category_id != category.id:
            raise BomValidationError(f"Component '{component.name}' does not belong to category '{category.name}'")

    return RequirementNode(
        id=node_id,
        category_id=category.id,
        category_name=category.name,
        component_id=component.id if component else None,
        component_name=component.name if component else "",
        required_quantity=item.required_quantity,
        barcode_prefix=item.barcode_prefix or "",
        is_packet=item.is_packet,
        packet_quantity=item.packet_quantity,
        description=item.description or "",
    )


def _attach_items(db: Session, tree: BomTree, items: List[KitComponentCreate], parent_id,
                  counter: Iterator[int]):
    """Validate new nodes against the tree; new nodes get placeholder ids."""
    for item in items:
        node = _to_node(db, item, f"new-{next(counter)}")
        if parent_id is None:
            tree.add_root(node)
        else:
            tree.add_child(parent_id, node)
        _attach_items(db, tree, item.children, node.id, counter)


def _insert_items(db: Session, kit_id: int, items: List[KitComponentCreate], parent_id: Optional[int]):
    position = db.query(func.count(KitComponent.id)).filter(
        KitComponent.kit_id == kit_id, KitComponent.parent_id == parent_id).scalar() or 0
    created = []
    for item in items:
        row = KitComponent(
            kit_id=kit_id,
            parent_id=parent_id,
            category_id=item.category_id,
            component_id=item.component_id,
            required_quantity=item.required_quantity,
            barcode_prefix=item.barcode_prefix,
            is_packet=item.is_packet,
            packet_quantity=item.packet_quantity,
            description=item.description,
            position=position,
        )
        position += 1
        db.add(row)
        db.flush()
        created.append(row)
        _insert_items(db, kit_id, item.children, row.id)
    return created


def _kit_out(db: Session, kit: Kit) -> KitOut:
    count = db.query(func.count(KitComponent.id)).filter(KitComponent.kit_id == kit.id).scalar()
    return KitOut.model_validate({
        **kit.__dict__,
        "component_count": count or 0,
        "locked": bool(open_boxes_for_kit(db, kit.id)),
    })


# ---------------- Get All ----------------

def get_kits(db: Session, params: KitRequest):
    query = db.query(Kit).filter(Kit.is_deleted == False)
    if params.search:
        query = query.filter(Kit.name.ilike(f"%{params.search}%"))
    total = query.count()
    kits = query.order_by(Kit.name).offset(params.skip).limit(params.limit).all()
    return {"kits": [_kit_out(db, kit) for kit in kits], "total": total}


# ---------------- Get By ID ----------------

def get_kit(db: Session, kit_id: int) -> KitDetailOut:
    kit = get_kit_row(db, kit_id)
    tree = _load_tree(db, kit)
    summary = _kit_out(db, kit)
    return KitDetailOut(
        **summary.model_dump(),
        components=tree.to_nested(),
        flattened=[row.as_dict() for row in tree.flatten()],
    )


# ---------------- Create ----------------

def create_kit(db: Session, kit: KitCreate) -> KitDetailOut:
    existing = db.query(Kit).filter(
        func.lower(Kit.name) == kit.name.strip().lower(), Kit.is_deleted == False).first()
    if existing:
        return error_response(
            message=f"Kit '{kit.name}' already exists",
            status_code=AppStatusCode.DUPLICATE_ENTRY,
        )

    _attach_items(db, BomTree(), kit.components, None, itertools.count(1))

    row = Kit(name=kit.name.strip(), description=kit.description)
    db.add(row)
    db.flush()
    _insert_items(db, row.id, kit.components, None)
    db.commit()
    logger.info("Created kit %s with %s top-level components", row.id, len(kit.components))
    return get_kit(db, row.id)


# ---------------- Add components ----------------

def add_kit_component(db: Session, request: KitComponentAdd) -> KitDetailOut:
    kit = get_kit_row(db, request.kit_id)
    ensure_kit_unlocked(db, kit.id)
    _attach_items(db, _load_tree(db, kit), [request], None, itertools.count(1))
    _insert_items(db, kit.id, [request], None)
    db.commit()
    return get_kit(db, kit.id)


def add_sub_component(db: Session, kit_id: int, requirement_id: int, request: KitComponentCreate) -> KitDetailOut:
    kit = get_kit_row(db, kit_id)
    tree = _load_tree(db, kit)
    if requirement_id not in tree:
        return error_response(
            message=f"Component {requirement_id} is not part of kit {kit_id}",
            status_code=AppStatusCode.NOT_FOUND,
            http_status=404,
        )
    ensure_kit_unlocked(db, kit.id)
    _attach_items(db, tree, [request], requirement_id, itertools.count(1))
    _insert_items(db, kit.id, [request], requirement_id)
    db.commit()
    return get_kit(db, kit.id)


# ---------------- Update ----------------

def update_kit_component(db: Session, request: KitComponentUpdate) -> KitDetailOut:
    row = db.query(KitComponent).filter(KitComponent.id == request.id).first()
    if row is None:
        return error_response(
            message=f"Kit component {request.id} not found",
            status_code=AppStatusCode.NOT_FOUND,
            http_status=404,
        )
    ensure_kit_unlocked(db, row.kit_id)

    changes = request.model_dump(exclude_unset=True, exclude={"id"})
    is_packet = changes.get("is_packet", row.is_packet)
    packet_quantity = changes.get("packet_quantity", row.packet_quantity)
    if is_packet and not packet_quantity:
        raise BomValidationError("Packet components need a packet quantity of at least 1")

    for key, value in changes.items():
        setattr(row, key, value)
    db.commit()
    return get_kit(db, row.kit_id)


# ---------------- Delete ----------------

def remove_kit_component(db: Session, kit_id: int, requirement_id: int, delete_component: bool = False):
    """Remove a BOM node and its sub-components from the kit; with
    ``delete_component`` the bound component is also deleted everywhere."""
    kit = get_kit_row(db, kit_id)
    tree = _load_tree(db, kit)
    if requirement_id not in tree:
        return error_response(
            message=f"Component {requirement_id} is not part of kit {kit_id}",
            status_code=AppStatusCode.NOT_FOUND,
            http_status=404,
        )
    ensure_kit_unlocked(db, kit.id)

    component_id = tree.node(requirement_id).component_id
    removed = tree.remove(requirement_id)
    db.query(KitComponent).filter(KitComponent.id.in_(removed)).delete(synchronize_session=False)

    if delete_component and component_id is not None:
        component = db.query(Component).filter(Component.id == component_id).first()
        if component is not None:
            component.is_deleted = True

    db.commit()
    logger.info("Removed %s BOM nodes from kit %s", len(removed), kit_id)
    return {"removed_ids": removed, "component_deleted": bool(delete_component and component_id)}
