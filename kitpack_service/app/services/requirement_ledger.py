"""Per-session scan counters for every requirement of a BOM tree.

A requirement's target is its own quantity multiplied by the target of its
parent, so a parent needing 2 brackets that is itself required twice needs 4
bracket units in total. Each counted child is tied to one parent barcode and a
parent barcode accepts at most ``child.required_quantity * parent units``
children of a given requirement.

In open-ended mode (flat scan batches) a top-level requirement has no fixed
target: whatever was scanned is the target, and children scale from that.
"""
import copy
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from .bom_tree import BomTree, RequirementId
from .exceptions import (AlreadyConsumed, LinkedChildrenPresent, NoMatchingRequirement,
                         NotScanned, QuantityExceeded)


@dataclass
class RequirementProgress:
    session_id: str
    requirement_id: RequirementId
    name: str
    level: int
    required_quantity: int
    scanned_count: int = 0
    parent_id: Optional[RequirementId] = None
    barcodes: List[str] = field(default_factory=list)
    parent_barcodes: Dict[str, str] = field(default_factory=dict)
    satisfied: bool = False
    complete: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.required_quantity - self.scanned_count)

    def as_dict(self) -> dict:
        result = asdict(self)
        result["remaining"] = self.remaining
        return result


@dataclass
class UnmetRequirement:
    requirement_id: RequirementId
    name: str
    scanned: int
    required: int
    parent_name: Optional[str] = None

    @property
    def remaining(self) -> int:
        return max(0, self.required - self.scanned)

    def __str__(self) -> str:
        return f"{self.name} ({self.remaining} more)"

    def as_dict(self) -> dict:
        result = asdict(self)
        result["remaining"] = self.remaining
        result["label"] = str(self)
        return result


@dataclass
class _Entry:
    # barcode -> units counted, in scan order
    units: Dict[str, int] = field(default_factory=dict)
    # barcode -> owning parent barcode (child requirements only)
    parents: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.units.values())


class RequirementLedger:
    def __init__(self, session_id: str, tree: BomTree, open_ended: bool = False):
        self.session_id = session_id
        self.tree = tree
        self.open_ended = open_ended
        self._entries: Dict[RequirementId, _Entry] = {}
        self._located: Dict[str, RequirementId] = {}
        self._order: List[str] = []

    # ---------------- counters ----------------

    def counted(self, requirement_id: RequirementId) -> int:
        entry = self._entries.get(requirement_id)
        return entry.total if entry else 0

    def required_for(self, requirement_id: RequirementId) -> int:
        node = self.tree.node(requirement_id)
        parent_id = self.tree.parent_id(requirement_id)
        if parent_id is None:
            if self.open_ended:
                return self.counted(requirement_id)
            return node.required_quantity
        return node.required_quantity * self.required_for(parent_id)

    def remaining(self, requirement_id: RequirementId) -> int:
        return max(0, self.required_for(requirement_id) - self.counted(requirement_id))

    def is_satisfied(self, requirement_id: RequirementId) -> bool:
        """Own count reached and, recursively, every child requirement satisfied."""
        if self.counted(requirement_id) < self.required_for(requirement_id):
            return False
        return all(self.is_satisfied(child.id) for child in self.tree.children(requirement_id))

    def is_complete(self) -> bool:
        if not self.tree.root_ids:
            return False
        return all(self.is_satisfied(root_id) for root_id in self.tree.root_ids)

    # ---------------- barcode lookups ----------------

    def requirement_of(self, barcode_value: str) -> Optional[RequirementId]:
        return self._located.get(barcode_value)

    def parent_barcode_of(self, barcode_value: str) -> Optional[str]:
        requirement_id = self._located.get(barcode_value)
        if requirement_id is None:
            return None
        return self._entries[requirement_id].parents.get(barcode_value)

    def units_of(self, barcode_value: str) -> int:
        requirement_id = self._located.get(barcode_value)
        if requirement_id is None:
            return 0
        return self._entries[requirement_id].units[barcode_value]

    def barcodes_for(self, requirement_id: RequirementId) -> List[str]:
        entry = self._entries.get(requirement_id)
        return list(entry.units) if entry else []

    def counted_barcodes(self) -> List[str]:
        return list(self._order)

    def linked_children(self, parent_barcode: str) -> List[str]:
        requirement_id = self._located.get(parent_barcode)
        if requirement_id is None:
            return []
        result = []
        for child in self.tree.children(requirement_id):
            entry = self._entries.get(child.id)
            if entry:
                result.extend(value for value, owner in entry.parents.items() if owner == parent_barcode)
        return result

    def parent_capacity(self, parent_barcode: str, child_id: RequirementId) -> int:
        """Child units the given parent barcode can still take for ``child_id``."""
        child = self.tree.node(child_id)
        parent_units = self.units_of(parent_barcode)
        entry = self._entries.get(child_id)
        used = 0
        if entry:
            used = sum(units for value, units in entry.units.items() if entry.parents.get(value) == parent_barcode)
        return max(0, child.required_quantity * parent_units - used)

    def open_parents(self, child_id: RequirementId) -> List[str]:
        """Parent barcodes (in scan order) that still have room for ``child_id``."""
        parent_id = self.tree.parent_id(child_id)
        if parent_id is None:
            return []
        return [
            value for value in self.barcodes_for(parent_id)
            if self.parent_capacity(value, child_id) > 0
        ]

    # ---------------- mutations ----------------

    def apply_scan(self, requirement_id: RequirementId, barcode_value: str,
                   parent_barcode: Optional[str] = None) -> RequirementProgress:
        node = self.tree.node(requirement_id)

        located = self._located.get(barcode_value)
        if located is not None:
            if located == requirement_id:
                return self.progress(requirement_id)
            raise AlreadyConsumed(
                f"Barcode {barcode_value} is already counted for {self.tree.node(located).display_name}")

        limit = None
        parent_id = self.tree.parent_id(requirement_id)
        if parent_id is not None:
            if parent_barcode is None:
                candidates = self.open_parents(requirement_id)
                if not candidates:
                    raise NoMatchingRequirement(
                        f"Scan a {self.tree.node(parent_id).display_name} before its {node.display_name}")
                parent_barcode = candidates[0]
            elif self._located.get(parent_barcode) != parent_id:
                raise NoMatchingRequirement(
                    f"Parent barcode {parent_barcode} is not a scanned {self.tree.node(parent_id).display_name}")
            limit = self.parent_capacity(parent_barcode, requirement_id)
            if limit <= 0:
                raise QuantityExceeded(
                    f"{self.tree.node(parent_id).display_name} {parent_barcode} already has all its {node.display_name}")

        if not (self.open_ended and parent_id is None):
            remaining = self.remaining(requirement_id)
            if remaining <= 0:
                raise QuantityExceeded(f"{node.display_name} already has all required scans")
            limit = remaining if limit is None else min(limit, remaining)

        units = node.unit_value if limit is None else min(node.unit_value, limit)

        entry = self._entries.setdefault(requirement_id, _Entry())
        entry.units[barcode_value] = units
        if parent_barcode is not None:
            entry.parents[barcode_value] = parent_barcode
        self._located[barcode_value] = requirement_id
        self._order.append(barcode_value)
        return self.progress(requirement_id)

    def apply_undo(self, requirement_id: RequirementId, barcode_value: str) -> RequirementProgress:
        entry = self._entries.get(requirement_id)
        if entry is None or barcode_value not in entry.units:
            raise NotScanned(f"Barcode {barcode_value} is not counted for this requirement")

        children = self.linked_children(barcode_value)
        if children:
            raise LinkedChildrenPresent(
                f"Remove the sub-components scanned for {barcode_value} first: {', '.join(children)}",
                children=children)

        del entry.units[barcode_value]
        entry.parents.pop(barcode_value, None)
        del self._located[barcode_value]
        self._order.remove(barcode_value)

        progress = self.progress(requirement_id)
        if not entry.units:
            del self._entries[requirement_id]
            if self.open_ended and self.tree.parent_id(requirement_id) is None:
                for removed_id in self.tree.remove(requirement_id):
                    self._entries.pop(removed_id, None)
        return progress

    # ---------------- views ----------------

    def progress(self, requirement_id: RequirementId) -> RequirementProgress:
        node = self.tree.node(requirement_id)
        entry = self._entries.get(requirement_id) or _Entry()
        required = self.required_for(requirement_id)
        return RequirementProgress(
            session_id=self.session_id,
            requirement_id=requirement_id,
            name=node.display_name,
            level=self.tree.level(requirement_id),
            parent_id=self.tree.parent_id(requirement_id),
            required_quantity=required,
            scanned_count=entry.total,
            barcodes=list(entry.units),
            parent_barcodes=dict(entry.parents),
            satisfied=entry.total >= required,
            complete=self.is_satisfied(requirement_id),
        )

    def all_progress(self) -> List[RequirementProgress]:
        return [self.progress(node.id) for node, _, _ in self.tree.walk()]

    def unmet(self) -> List[UnmetRequirement]:
        result = []
        for node, _, parent_id in self.tree.walk():
            required = self.required_for(node.id)
            scanned = self.counted(node.id)
            if scanned < required:
                parent_name = self.tree.node(parent_id).display_name if parent_id is not None else None
                result.append(UnmetRequirement(
                    requirement_id=node.id,
                    name=node.display_name,
                    scanned=scanned,
                    required=required,
                    parent_name=parent_name,
                ))
        return result

    def totals(self) -> Dict[str, int]:
        scanned = required = 0
        for node, _, _ in self.tree.walk():
            required_here = self.required_for(node.id)
            required += required_here
            scanned += min(self.counted(node.id), required_here)
        return {"total_scanned": scanned, "total_required": required}

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        return {str(requirement_id): dict(entry.units) for requirement_id, entry in self._entries.items()}

    def clone(self) -> "RequirementLedger":
        return copy.deepcopy(self)
