"""Interfaces of the collaborators the scan engine consumes.

The SQLAlchemy implementations live in ``crud/``; tests use in-memory fakes.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..enum.kit_packing_enum import BarcodeStatus, ObjectType, SessionMode, SessionStatus
from .bom_tree import BomTree
from .concurrency import Deadline


@dataclass
class BarcodeRecord:
    id: int
    value: str
    object_type: ObjectType
    object_id: Optional[int]
    status: BarcodeStatus
    component_id: Optional[int] = None
    component_name: str = ""
    category_id: Optional[int] = None
    category_name: str = ""
    parent_barcode: Optional[str] = None
    box_barcode: Optional[str] = None
    session_id: Optional[str] = None
    scanned_by: Optional[int] = None
    created_at: Optional[datetime] = None
    scanned_at: Optional[datetime] = None
    boxed_at: Optional[datetime] = None

    @property
    def sort_key(self):
        return (self.scanned_at or self.created_at or datetime.min, self.id)


@dataclass
class SessionRecord:
    id: str
    mode: SessionMode
    status: SessionStatus = SessionStatus.OPEN
    kit_id: Optional[int] = None
    box_barcode: Optional[str] = None
    version: int = 0
    started_by: Optional[int] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    total_scanned: int = 0
    total_required: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class BarcodeRegistry(ABC):
    @abstractmethod
    def resolve(self, barcode_value: str) -> Optional[BarcodeRecord]:
        """Barcode with its component/category identity, or None"""

    @abstractmethod
    def set_status(self, barcode_value: str, new_status: BarcodeStatus,
                   actor_id: Optional[int], timestamp: datetime) -> BarcodeRecord:
        pass

    @abstractmethod
    def link_parent(self, barcode_value: str, parent_barcode: Optional[str]) -> None:
        pass

    @abstractmethod
    def link_box(self, barcode_value: str, box_barcode: Optional[str]) -> None:
        pass

    @abstractmethod
    def link_session(self, barcode_value: str, session_id: Optional[str]) -> None:
        pass

    @abstractmethod
    def list_by_object(self, object_type: ObjectType, object_id: int,
                       status: Optional[BarcodeStatus] = None) -> List[BarcodeRecord]:
        pass

    @abstractmethod
    def list_by_box(self, box_barcode: str) -> List[BarcodeRecord]:
        pass

    @abstractmethod
    def list_by_session(self, session_id: str) -> List[BarcodeRecord]:
        pass

    @abstractmethod
    def list_children(self, parent_barcode: str) -> List[BarcodeRecord]:
        pass


class BomProvider(ABC):
    @abstractmethod
    def get_kit_bom(self, kit_id: int) -> Optional[BomTree]:
        pass

    @abstractmethod
    def get_component_template(self, component_id: int) -> Optional[BomTree]:
        """Sub-tree under the first BOM node bound to ``component_id`` that has
        children, re-rooted at that node; None when the component never acts
        as a parent."""


class SessionStore(ABC):
    @abstractmethod
    def load(self, session_id: str) -> Optional[SessionRecord]:
        pass

    @abstractmethod
    def save(self, record: SessionRecord, expected_version: int) -> int:
        """Persist ``record`` if the stored version still equals
        ``expected_version``; returns the new version or raises
        ConcurrentModification."""

    def is_open(self, session_id: str) -> bool:
        record = self.load(session_id)
        return record is not None and record.status == SessionStatus.OPEN


def _noop():
    return None


@dataclass
class ScanContext:
    """Per-request collaborators handed to the coordinator"""
    registry: BarcodeRegistry
    bom_provider: BomProvider
    store: SessionStore
    deadline: Deadline
    actor_id: Optional[int] = None
    commit: Callable[[], None] = _noop
    rollback: Callable[[], None] = _noop
