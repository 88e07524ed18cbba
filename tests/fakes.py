"""In-memory collaborators for exercising the scan engine without a database."""
import copy
import itertools
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from kitpack_service.app.enum.kit_packing_enum import BarcodeStatus, ObjectType, SessionStatus
from kitpack_service.app.services.bom_tree import BomTree, RequirementNode
from kitpack_service.app.services.collaborators import (BarcodeRecord, BarcodeRegistry, BomProvider,
                                                        ScanContext, SessionRecord, SessionStore)
from kitpack_service.app.services.concurrency import Deadline
from kitpack_service.app.services.exceptions import ConcurrentModification, UnknownBarcode
from kitpack_service.app.services.scan_reconciler import ScanReconciler
from kitpack_service.app.services.session_coordinator import SessionCoordinator

EPOCH = datetime(2024, 1, 1)


class FakeRegistry(BarcodeRegistry):
    def __init__(self):
        self.records: Dict[str, BarcodeRecord] = {}
        self.status_changes: List[tuple] = []
        self._ids = itertools.count(1)
        # logical clock so scan order never ties
        self._ticks = itertools.count(1)

    def add_component(self, value: str, component_id: int, category_id: int, component_name: str = "",
                      category_name: str = "", status: BarcodeStatus = BarcodeStatus.CREATED,
                      **fields) -> BarcodeRecord:
        record = BarcodeRecord(
            id=next(self._ids), value=value, object_type=ObjectType.COMPONENT, object_id=component_id,
            status=status, component_id=component_id, component_name=component_name,
            category_id=category_id, category_name=category_name, created_at=EPOCH, **fields,
        )
        if status != BarcodeStatus.CREATED and record.scanned_at is None:
            record.scanned_at = self._tick()
        self.records[value] = record
        return record

    def add_box(self, value: str, kit_id: int, status: BarcodeStatus = BarcodeStatus.CREATED) -> BarcodeRecord:
        record = BarcodeRecord(id=next(self._ids), value=value, object_type=ObjectType.BOX,
                               object_id=kit_id, status=status, created_at=EPOCH)
        self.records[value] = record
        return record

    def status_of(self, value: str) -> BarcodeStatus:
        return self.records[value].status

    def _tick(self) -> datetime:
        return EPOCH + timedelta(seconds=next(self._ticks))

    def _require(self, value: str) -> BarcodeRecord:
        if value not in self.records:
            raise UnknownBarcode(f"Barcode {value} not found")
        return self.records[value]

    def resolve(self, barcode_value: str) -> Optional[BarcodeRecord]:
        record = self.records.get(barcode_value)
        return replace(record) if record else None

    def set_status(self, barcode_value, new_status, actor_id, timestamp) -> BarcodeRecord:
        record = self._require(barcode_value)
        self.status_changes.append((barcode_value, record.status, new_status))
        if record.status == BarcodeStatus.CREATED and new_status == BarcodeStatus.SCANNED:
            record.scanned_at = self._tick()
            record.scanned_by = actor_id
        elif new_status == BarcodeStatus.CREATED:
            record.scanned_at = None
        record.status = new_status
        return replace(record)

    def link_parent(self, barcode_value, parent_barcode) -> None:
        self._require(barcode_value).parent_barcode = parent_barcode

    def link_box(self, barcode_value, box_barcode) -> None:
        self._require(barcode_value).box_barcode = box_barcode

    def link_session(self, barcode_value, session_id) -> None:
        self._require(barcode_value).session_id = session_id

    def list_by_object(self, object_type, object_id, status=None) -> List[BarcodeRecord]:
        return [replace(r) for r in self.records.values()
                if r.object_type == object_type and r.object_id == object_id
                and (status is None or r.status == status)]

    def list_by_box(self, box_barcode) -> List[BarcodeRecord]:
        return [replace(r) for r in self.records.values() if r.box_barcode == box_barcode]

    def list_by_session(self, session_id) -> List[BarcodeRecord]:
        return [replace(r) for r in self.records.values() if r.session_id == session_id]

    def list_children(self, parent_barcode) -> List[BarcodeRecord]:
        return [replace(r) for r in self.records.values() if r.parent_barcode == parent_barcode]


class FakeBomProvider(BomProvider):
    def __init__(self, *trees: BomTree):
        self.kits = {tree.kit_id: tree for tree in trees}

    def get_kit_bom(self, kit_id) -> Optional[BomTree]:
        tree = self.kits.get(kit_id)
        return copy.deepcopy(tree) if tree is not None else None

    def get_component_template(self, component_id) -> Optional[BomTree]:
        for kit_id in sorted(self.kits):
            tree = self.kits[kit_id]
            for node, _, _ in tree.walk():
                if node.component_id == component_id and node.child_ids:
                    return tree.subtree(node.id)
        return None


class FakeSessionStore(SessionStore):
    def __init__(self):
        self.records: Dict[str, SessionRecord] = {}
        self.fail_next_save = False

    def load(self, session_id) -> Optional[SessionRecord]:
        record = self.records.get(session_id)
        return copy.deepcopy(record) if record else None

    def save(self, record, expected_version) -> int:
        current = self.records.get(record.id)
        current_version = current.version if current else 0
        if self.fail_next_save or current_version != expected_version:
            self.fail_next_save = False
            raise ConcurrentModification(session_id=record.id)
        stored = copy.deepcopy(record)
        stored.version = expected_version + 1
        self.records[record.id] = stored
        return stored.version

    def bump(self, session_id: str) -> None:
        """Simulate a write by another process"""
        self.records[session_id].version += 1

    def close(self, session_id: str) -> None:
        self.records[session_id].status = SessionStatus.COMPLETE


class Recorder:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def make_context(registry, bom_provider, store, timeout=None, actor_id=7, recorder=None) -> ScanContext:
    recorder = recorder or Recorder()
    return ScanContext(
        registry=registry,
        bom_provider=bom_provider,
        store=store,
        deadline=Deadline(timeout),
        actor_id=actor_id,
        commit=recorder.commit,
        rollback=recorder.rollback,
    )


# category ids shared by the sample kits
MOTOR, CASING, SCREW, ASSEMBLY, BRACKET = 10, 20, 30, 40, 50


def k1_tree() -> BomTree:
    """Kit 1 "K1": Motor x1, Casing x1"""
    tree = BomTree(kit_id=1, kit_name="K1")
    tree.add_root(RequirementNode(id=1, category_id=MOTOR, category_name="Motor",
                                  component_id=100, component_name="Motor"))
    tree.add_root(RequirementNode(id=2, category_id=CASING, category_name="Casing",
                                  component_id=200, component_name="Casing"))
    return tree


def assembly_tree(assemblies: int = 1) -> BomTree:
    """Kit 2: Assembly that needs 2 Brackets of any bracket component"""
    tree = BomTree(kit_id=2, kit_name="Assembly kit")
    tree.add_root(RequirementNode(id=10, category_id=ASSEMBLY, category_name="Assembly",
                                  component_id=400, component_name="Assembly",
                                  required_quantity=assemblies))
    tree.add_child(10, RequirementNode(id=11, category_id=BRACKET, category_name="Bracket",
                                       required_quantity=2))
    return tree


def resume_tree() -> BomTree:
    """Kit 3: Motor x1, Screw x2, Casing x1"""
    tree = BomTree(kit_id=3, kit_name="Resume kit")
    tree.add_root(RequirementNode(id=20, category_id=MOTOR, category_name="Motor",
                                  component_id=100, component_name="Motor"))
    tree.add_root(RequirementNode(id=21, category_id=SCREW, category_name="Screw",
                                  component_id=300, component_name="Screw", required_quantity=2))
    tree.add_root(RequirementNode(id=22, category_id=CASING, category_name="Casing",
                                  component_id=200, component_name="Casing"))
    return tree


class Engine:
    """A coordinator wired to in-memory collaborators"""

    def __init__(self, *trees, reconciler: Optional[ScanReconciler] = None):
        self.registry = FakeRegistry()
        self.bom = FakeBomProvider(*trees)
        self.store = FakeSessionStore()
        self.recorder = Recorder()
        self.coordinator = SessionCoordinator(reconciler or ScanReconciler())

    def ctx(self, timeout=None) -> ScanContext:
        return make_context(self.registry, self.bom, self.store, timeout=timeout, recorder=self.recorder)

    def restarted(self) -> SessionCoordinator:
        """Coordinator sharing the collaborators but with an empty cache"""
        return SessionCoordinator(self.coordinator.reconciler)

    def motor(self, value="M1", **fields):
        return self.registry.add_component(value, 100, MOTOR, "Motor", "Motor", **fields)

    def casing(self, value="C1", **fields):
        return self.registry.add_component(value, 200, CASING, "Casing", "Casing", **fields)

    def screw(self, value, **fields):
        return self.registry.add_component(value, 300, SCREW, "Screw", "Screw", **fields)

    def assembly(self, value="A1", **fields):
        return self.registry.add_component(value, 400, ASSEMBLY, "Assembly", "Assembly", **fields)

    def bracket(self, value, component_id=500, **fields):
        return self.registry.add_component(value, component_id, BRACKET, "Bracket", "Bracket", **fields)
