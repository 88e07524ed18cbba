from dataclasses import dataclass
from typing import Optional

from ..enum.kit_packing_enum import SessionMode, SessionStatus
from .bom_tree import BomTree
from .collaborators import SessionRecord
from .requirement_ledger import RequirementLedger


@dataclass
class ScanSession:
    """One packing session (box mode) or scan batch (flat mode).

    Passed explicitly into every reconciliation call.
    """
    id: str
    mode: SessionMode
    ledger: RequirementLedger
    status: SessionStatus = SessionStatus.OPEN
    kit_id: Optional[int] = None
    box_barcode: Optional[str] = None
    version: int = 0
    started_by: Optional[int] = None
    resumed: bool = False

    @classmethod
    def for_box(cls, box_barcode: str, tree: BomTree, **kwargs) -> "ScanSession":
        ledger = RequirementLedger(box_barcode, tree)
        return cls(id=box_barcode, mode=SessionMode.BOX, ledger=ledger,
                   kit_id=tree.kit_id, box_barcode=box_barcode, **kwargs)

    @classmethod
    def for_batch(cls, batch_id: str, **kwargs) -> "ScanSession":
        ledger = RequirementLedger(batch_id, BomTree(unique_categories=False), open_ended=True)
        return cls(id=batch_id, mode=SessionMode.BATCH, ledger=ledger, **kwargs)

    @property
    def tree(self) -> BomTree:
        return self.ledger.tree

    @property
    def is_open(self) -> bool:
        return self.status == SessionStatus.OPEN

    @property
    def is_box(self) -> bool:
        return self.mode == SessionMode.BOX

    def summary(self) -> dict:
        ledger = self.ledger
        requirements = []
        for row in self.tree.flatten():
            item = row.as_dict()
            item["quantity_per_parent"] = row.required_quantity
            item.update(ledger.progress(row.id).as_dict())
            requirements.append(item)
        return {
            "session_id": self.id,
            "mode": self.mode.value,
            "status": self.status.value,
            "kit_id": self.kit_id,
            "kit_name": self.tree.kit_name,
            "box_barcode": self.box_barcode,
            "version": self.version,
            "resumed": self.resumed,
            "is_complete": ledger.is_complete(),
            "requirements": requirements,
            "unmet": [item.as_dict() for item in ledger.unmet()],
            "scanned_barcodes": ledger.counted_barcodes(),
            **ledger.totals(),
        }

    def to_record(self) -> SessionRecord:
        totals = self.ledger.totals()
        return SessionRecord(
            id=self.id,
            mode=self.mode,
            status=self.status,
            kit_id=self.kit_id,
            box_barcode=self.box_barcode,
            version=self.version,
            started_by=self.started_by,
            progress=self.ledger.snapshot(),
            total_scanned=totals["total_scanned"],
            total_required=totals["total_required"],
        )
