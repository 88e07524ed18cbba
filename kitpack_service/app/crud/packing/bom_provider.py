# crud/packing/bom_provider.py
from collections import defaultdict
from typing import List, Optional

from sqlalchemy import exists
from sqlalchemy.orm import Session, aliased, joinedload

from ...models.kit_catalog.kit_components import KitComponent
from ...models.kit_catalog.kits import Kit
from ...services.bom_tree import BomTree, FlatRequirement
from ...services.collaborators import BomProvider


def kit_tree_from_rows(kit: Kit, rows: List[KitComponent]) -> BomTree:
    """Pre-order flattened rows of a kit, rebuilt into its BOM tree."""
    children = defaultdict(list)
    for row in rows:
        children[row.parent_id].append(row)
    for siblings in children.values():
        siblings.sort(key=lambda item: (item.position or 0, item.id))

    flat = []

    def visit(row: KitComponent, level: int, parent: Optional[KitComponent]):
        flat.append(FlatRequirement(
            id=row.id,
            level=level,
            parent_id=parent.id if parent else None,
            parent_component_id=parent.component_id if parent else None,
            category_id=row.category_id,
            category_name=row.category.name if row.category else "",
            component_id=row.component_id,
            component_name=row.component.name if row.component else "",
            required_quantity=row.required_quantity,
            barcode_prefix=row.barcode_prefix or "",
            is_packet=bool(row.is_packet),
            packet_quantity=row.packet_quantity,
            description=row.description or "",
        ))
        for child in children.get(row.id, []):
            visit(child, level + 1, row)

    for root in children.get(None, []):
        visit(root, 1, None)
    return BomTree.rebuild(flat, kit_id=kit.id, kit_name=kit.name)


def load_kit_rows(db: Session, kit_id: int) -> List[KitComponent]:
    return (
        db.query(KitComponent)
        .options(joinedload(KitComponent.category), joinedload(KitComponent.component))
        .filter(KitComponent.kit_id == kit_id)
        .all()
    )


class SqlBomProvider(BomProvider):
    def __init__(self, db: Session):
        self.db = db

    def get_kit_bom(self, kit_id: int) -> Optional[BomTree]:
        kit = self.db.query(Kit).filter(Kit.id == kit_id, Kit.is_deleted == False).first()
        if kit is None:
            return None
        return kit_tree_from_rows(kit, load_kit_rows(self.db, kit_id))

    def get_component_template(self, component_id: int) -> Optional[BomTree]:
        child = aliased(KitComponent)
        node = (
            self.db.query(KitComponent)
            .join(Kit, Kit.id == KitComponent.kit_id)
            .filter(
                KitComponent.component_id == component_id,
                Kit.is_deleted == False,
                exists().where(child.parent_id == KitComponent.id),
            )
            .order_by(KitComponent.kit_id, KitComponent.id)
            .first()
        )
        if node is None:
            return None
        tree = self.get_kit_bom(node.kit_id)
        return tree.subtree(node.id)
