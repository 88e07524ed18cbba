"""Kit bill of materials as an arena of requirement nodes.

Nodes are stored by id and keep the ordered ids of their children. The parent
of a node is looked up through a reverse index maintained alongside the arena,
never through a pointer stored on the node.
"""
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Hashable, Iterator, List, Optional, Tuple

from .exceptions import BomValidationError

RequirementId = Hashable

MAX_DEPTH = 3


@dataclass
class RequirementNode:
    id: RequirementId
    category_id: Optional[int] = None
    category_name: str = ""
    component_id: Optional[int] = None
    component_name: str = ""
    required_quantity: int = 1
    barcode_prefix: str = ""
    is_packet: bool = False
    packet_quantity: Optional[int] = None
    description: str = ""
    child_ids: List[RequirementId] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.component_name or self.category_name or str(self.id)

    @property
    def unit_value(self) -> int:
        """Logical units represented by one physical scan"""
        if self.is_packet and self.packet_quantity:
            return self.packet_quantity
        return 1


@dataclass
class FlatRequirement:
    id: RequirementId
    level: int
    parent_id: Optional[RequirementId] = None
    parent_component_id: Optional[int] = None
    category_id: Optional[int] = None
    category_name: str = ""
    component_id: Optional[int] = None
    component_name: str = ""
    required_quantity: int = 1
    barcode_prefix: str = ""
    is_packet: bool = False
    packet_quantity: Optional[int] = None
    description: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


_NODE_FIELDS = [f.name for f in fields(RequirementNode) if f.name != "child_ids"]


class BomTree:
    def __init__(self, kit_id: Optional[int] = None, kit_name: str = "", max_depth: int = MAX_DEPTH,
                 unique_categories: bool = True):
        self.kit_id = kit_id
        self.kit_name = kit_name
        self.max_depth = max_depth
        # flat scan batches hold one root per scanned component, categories may repeat there
        self.unique_categories = unique_categories
        self.nodes: Dict[RequirementId, RequirementNode] = {}
        self.root_ids: List[RequirementId] = []
        self._parents: Dict[RequirementId, Optional[RequirementId]] = {}

    def __eq__(self, other) -> bool:
        if not isinstance(other, BomTree):
            return NotImplemented
        return (
            self.kit_id == other.kit_id
            and self.kit_name == other.kit_name
            and self.root_ids == other.root_ids
            and self.nodes == other.nodes
        )

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id) -> bool:
        return node_id in self.nodes

    # ---------------- lookups ----------------

    def node(self, node_id: RequirementId) -> RequirementNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise BomValidationError(f"Requirement {node_id} is not part of this kit")

    def parent_id(self, node_id: RequirementId) -> Optional[RequirementId]:
        self.node(node_id)
        return self._parents.get(node_id)

    def parent(self, node_id: RequirementId) -> Optional[RequirementNode]:
        parent_id = self.parent_id(node_id)
        return self.nodes[parent_id] if parent_id is not None else None

    def children(self, node_id: RequirementId) -> List[RequirementNode]:
        return [self.nodes[child_id] for child_id in self.node(node_id).child_ids]

    def roots(self) -> List[RequirementNode]:
        return [self.nodes[root_id] for root_id in self.root_ids]

    def level(self, node_id: RequirementId) -> int:
        level = 1
        parent_id = self.parent_id(node_id)
        while parent_id is not None:
            level += 1
            parent_id = self._parents.get(parent_id)
        return level

    def ancestors(self, node_id: RequirementId) -> List[RequirementId]:
        result = []
        parent_id = self.parent_id(node_id)
        while parent_id is not None:
            result.append(parent_id)
            parent_id = self._parents.get(parent_id)
        return result

    def walk(self) -> Iterator[Tuple[RequirementNode, int, Optional[RequirementId]]]:
        """Pre-order traversal yielding (node, level, parent id)."""
        stack = [(root_id, 1, None) for root_id in reversed(self.root_ids)]
        while stack:
            node_id, level, parent_id = stack.pop()
            node = self.nodes[node_id]
            yield node, level, parent_id
            for child_id in reversed(node.child_ids):
                stack.append((child_id, level + 1, node_id))

    def preorder_index(self) -> Dict[RequirementId, int]:
        return {node.id: index for index, (node, _, _) in enumerate(self.walk())}

    # ---------------- mutations ----------------

    def add_root(self, node: RequirementNode) -> RequirementNode:
        return self._attach(node, None)

    def add_child(self, parent_id: RequirementId, node: RequirementNode) -> RequirementNode:
        if parent_id not in self.nodes:
            raise BomValidationError(f"Parent requirement {parent_id} is not part of this kit")
        return self._attach(node, parent_id)

    def remove(self, node_id: RequirementId) -> List[RequirementId]:
        """Detach a node and its whole sub-tree; returns the removed ids."""
        node = self.node(node_id)
        parent_id = self._parents.get(node_id)
        siblings = self.nodes[parent_id].child_ids if parent_id is not None else self.root_ids
        siblings.remove(node_id)

        removed = []
        stack = [node.id]
        while stack:
            current = stack.pop()
            removed.append(current)
            stack.extend(self.nodes[current].child_ids)
        for removed_id in removed:
            del self.nodes[removed_id]
            del self._parents[removed_id]
        return removed

    def _attach(self, node: RequirementNode, parent_id: Optional[RequirementId]) -> RequirementNode:
        if node.id in self.nodes:
            raise BomValidationError(f"Requirement {node.id} already belongs to this kit")
        if node.required_quantity is None or node.required_quantity < 1:
            raise BomValidationError("Required quantity must be at least 1")
        if node.is_packet and (not node.packet_quantity or node.packet_quantity < 1):
            raise BomValidationError("Packet components need a packet quantity of at least 1")

        level = 1 if parent_id is None else self.level(parent_id) + 1
        if level > self.max_depth:
            raise BomValidationError(
                f"Sub-components can only be nested {self.max_depth} levels deep")

        siblings = self.root_ids if parent_id is None else self.nodes[parent_id].child_ids
        check_siblings = self.unique_categories or parent_id is not None
        if check_siblings and node.category_id is not None:
            for sibling_id in siblings:
                if self.nodes[sibling_id].category_id == node.category_id:
                    raise BomValidationError(
                        f"Category '{node.category_name or node.category_id}' is already used at this level")

        stored = replace(node, child_ids=[])
        self.nodes[stored.id] = stored
        self._parents[stored.id] = parent_id
        siblings.append(stored.id)
        return stored

    # ---------------- flatten / rebuild ----------------

    def flatten(self) -> List[FlatRequirement]:
        rows = []
        for node, level, parent_id in self.walk():
            parent_component_id = self.nodes[parent_id].component_id if parent_id is not None else None
            values = {name: getattr(node, name) for name in _NODE_FIELDS}
            rows.append(FlatRequirement(
                level=level,
                parent_id=parent_id,
                parent_component_id=parent_component_id,
                **values,
            ))
        return rows

    @classmethod
    def rebuild(cls, rows: List[Any], kit_id: Optional[int] = None, kit_name: str = "") -> "BomTree":
        tree = cls(kit_id=kit_id, kit_name=kit_name)
        for row in rows:
            if isinstance(row, dict):
                row = FlatRequirement(**row)
            node = RequirementNode(**{name: getattr(row, name) for name in _NODE_FIELDS})
            if row.parent_id is None:
                if row.level != 1:
                    raise BomValidationError(f"Requirement {row.id} has level {row.level} but no parent")
                tree.add_root(node)
            else:
                tree.add_child(row.parent_id, node)
                if tree.level(node.id) != row.level:
                    raise BomValidationError(f"Requirement {row.id} level does not match its parent")
        return tree

    @classmethod
    def from_nested(cls, items: List[Dict[str, Any]], kit_id: Optional[int] = None, kit_name: str = "") -> "BomTree":
        tree = cls(kit_id=kit_id, kit_name=kit_name)

        def attach(item, parent_id):
            values = {name: item[name] for name in _NODE_FIELDS if name in item}
            node = RequirementNode(**values)
            if parent_id is None:
                tree.add_root(node)
            else:
                tree.add_child(parent_id, node)
            for child in item.get("children") or []:
                attach(child, node.id)

        for item in items:
            attach(item, None)
        return tree

    def to_nested(self) -> List[Dict[str, Any]]:
        def build(node_id):
            node = self.nodes[node_id]
            item = {name: getattr(node, name) for name in _NODE_FIELDS}
            item["level"] = self.level(node_id)
            item["children"] = [build(child_id) for child_id in node.child_ids]
            return item

        return [build(root_id) for root_id in self.root_ids]

    def subtree(self, node_id: RequirementId) -> "BomTree":
        """Copy of the sub-tree rooted at ``node_id``, re-rooted at level 1."""
        result = BomTree(kit_id=self.kit_id, kit_name=self.kit_name, max_depth=self.max_depth)

        def copy(current_id, parent_id):
            node = self.nodes[current_id]
            if parent_id is None:
                result.add_root(node)
            else:
                result.add_child(parent_id, node)
            for child_id in node.child_ids:
                copy(child_id, current_id)

        copy(node_id, None)
        return result

    def graft(self, root: RequirementNode, template: Optional["BomTree"] = None) -> RequirementNode:
        """Add ``root`` as a new top-level node and copy the children of
        ``template``'s first root beneath it, with ids namespaced by ``root.id``.
        """
        stored = self.add_root(root)
        if template is None or not template.root_ids:
            return stored

        def copy(template_id, parent_id):
            source = template.nodes[template_id]
            clone = replace(source, id=f"{root.id}/{source.id}", child_ids=[])
            self.add_child(parent_id, clone)
            for child_id in source.child_ids:
                copy(child_id, clone.id)

        for child_id in template.nodes[template.root_ids[0]].child_ids:
            copy(child_id, stored.id)
        return stored
