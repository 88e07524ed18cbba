"""Classify an incoming barcode scan against a session's open requirements.

Box mode tries top-level requirements first and then the child slots of
parents already scanned in the box. Flat mode (scan batches) tries the child
slots of pending parents first and otherwise opens a new top-level entry for
the scanned component, copying the sub-components it needs from its BOM.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional, Tuple

from ..enum.kit_packing_enum import (BarcodeStatus, ChildMatchPolicy, ChildTieBreak,
                                     ObjectType)
from .bom_tree import BomTree, RequirementId, RequirementNode
from .collaborators import BarcodeRecord, BarcodeRegistry, BomProvider
from .concurrency import Deadline
from .exceptions import (AlreadyConsumed, KitPackError, NoMatchingRequirement,
                         QuantityExceeded, UnknownBarcode, WrongBarcodeType)
from .requirement_ledger import RequirementLedger, RequirementProgress
from .scan_session import ScanSession

logger = logging.getLogger(__name__)


@dataclass
class ScanTarget:
    record: BarcodeRecord
    requirement_id: RequirementId
    parent_barcode: Optional[str] = None
    graft: Optional[Tuple[RequirementNode, Optional[BomTree]]] = None
    duplicate: bool = False
    adopted: bool = False


@dataclass
class ScanOutcome:
    barcode: str
    requirement_id: RequirementId
    requirement_name: str
    level: int
    progress: RequirementProgress
    session_complete: bool
    component_id: Optional[int] = None
    component_name: str = ""
    category_id: Optional[int] = None
    category_name: str = ""
    parent_requirement_id: Optional[RequirementId] = None
    parent_barcode: Optional[str] = None
    parent_progress: Optional[RequirementProgress] = None
    parent_satisfied: Optional[bool] = None
    duplicate: bool = False
    adopted: bool = False
    status: Optional[BarcodeStatus] = None

    def as_dict(self) -> dict:
        result = asdict(self)
        result["progress"] = self.progress.as_dict()
        result["parent_progress"] = self.parent_progress.as_dict() if self.parent_progress else None
        return result


class ScanReconciler:
    def __init__(self, child_match: ChildMatchPolicy = ChildMatchPolicy.CATEGORY,
                 tie_break: ChildTieBreak = ChildTieBreak.PREORDER):
        self.child_match = ChildMatchPolicy(child_match)
        self.tie_break = ChildTieBreak(tie_break)

    # ---------------- public API ----------------

    def classify(self, session: ScanSession, barcode_value: str, registry: BarcodeRegistry,
                 bom_provider: Optional[BomProvider] = None, deadline: Optional[Deadline] = None,
                 is_session_open: Optional[Callable[[str], bool]] = None) -> ScanOutcome:
        """Dry run: the outcome a scan would have, leaving the session untouched."""
        target = self.locate(session, barcode_value, registry, bom_provider, deadline, is_session_open)
        return self.apply(session.ledger.clone(), target)

    def locate(self, session: ScanSession, barcode_value: str, registry: BarcodeRegistry,
               bom_provider: Optional[BomProvider] = None, deadline: Optional[Deadline] = None,
               is_session_open: Optional[Callable[[str], bool]] = None) -> ScanTarget:
        deadline = deadline or Deadline(None)
        deadline.check("resolving barcode")
        record = registry.resolve(barcode_value)
        if record is None:
            raise UnknownBarcode(f"Barcode {barcode_value} not found", barcode=barcode_value)
        if record.object_type != ObjectType.COMPONENT:
            raise WrongBarcodeType(f"{barcode_value} is a box barcode and cannot be scanned as an item")

        located = session.ledger.requirement_of(barcode_value)
        if located is not None:
            return ScanTarget(record=record, requirement_id=located,
                              parent_barcode=session.ledger.parent_barcode_of(barcode_value),
                              duplicate=True)

        adopted = self._check_status(session, record, is_session_open)
        parent_hint = record.parent_barcode if adopted else None
        requirement_id, parent_barcode, graft = self._match(
            session, record, parent_hint, bom_provider, deadline)
        return ScanTarget(record=record, requirement_id=requirement_id,
                          parent_barcode=parent_barcode, graft=graft, adopted=adopted)

    def apply(self, ledger: RequirementLedger, target: ScanTarget) -> ScanOutcome:
        if target.graft is not None and target.requirement_id not in ledger.tree:
            root, template = target.graft
            ledger.tree.graft(root, template)

        record = target.record
        progress = ledger.apply_scan(target.requirement_id, record.value, target.parent_barcode)

        tree = ledger.tree
        parent_id = tree.parent_id(target.requirement_id)
        return ScanOutcome(
            barcode=record.value,
            requirement_id=target.requirement_id,
            requirement_name=tree.node(target.requirement_id).display_name,
            level=tree.level(target.requirement_id),
            progress=progress,
            session_complete=ledger.is_complete(),
            component_id=record.component_id,
            component_name=record.component_name,
            category_id=record.category_id,
            category_name=record.category_name,
            parent_requirement_id=parent_id,
            parent_barcode=ledger.parent_barcode_of(record.value),
            parent_progress=ledger.progress(parent_id) if parent_id is not None else None,
            parent_satisfied=ledger.is_satisfied(parent_id) if parent_id is not None else None,
            duplicate=target.duplicate,
            adopted=target.adopted,
            status=record.status,
        )

    def replay(self, session: ScanSession, records: List[BarcodeRecord],
               bom_provider: Optional[BomProvider] = None) -> List[str]:
        """Rebuild ledger progress from persisted barcodes, in scan order.

        Returns the barcodes that no longer fit the session (for example after
        the kit changed); they are logged and left out of the progress.
        """
        skipped = []
        for record in _replay_order(records):
            parent_hint = record.parent_barcode
            if parent_hint is not None and session.ledger.requirement_of(parent_hint) is None:
                parent_hint = None
            try:
                requirement_id, parent_barcode, graft = self._match(
                    session, record, parent_hint, bom_provider, Deadline(None))
                self.apply(session.ledger, ScanTarget(
                    record=record, requirement_id=requirement_id,
                    parent_barcode=parent_barcode, graft=graft))
            except KitPackError as exc:
                logger.warning("Session %s: barcode %s skipped during replay: %s",
                               session.id, record.value, exc.message)
                skipped.append(record.value)
        return skipped

    # ---------------- status checks ----------------

    def _check_status(self, session: ScanSession, record: BarcodeRecord,
                      is_session_open: Optional[Callable[[str], bool]]) -> bool:
        """Raise when the barcode's status forbids this scan; returns True when
        an already scanned barcode is taken over by a box."""
        if record.status == BarcodeStatus.BOXED:
            where = f" in box {record.box_barcode}" if record.box_barcode else ""
            raise AlreadyConsumed(f"Barcode {record.value} has already been packed{where}")

        if record.status != BarcodeStatus.SCANNED:
            return False
        if record.session_id == session.id:
            return False
        if not session.is_box:
            raise AlreadyConsumed(f"Barcode {record.value} has already been scanned")
        if record.box_barcode and record.box_barcode != session.box_barcode:
            raise AlreadyConsumed(f"Barcode {record.value} is already packed in box {record.box_barcode}")
        if record.session_id and is_session_open is not None and is_session_open(record.session_id):
            raise AlreadyConsumed(f"Barcode {record.value} belongs to an open scan batch")
        return True

    # ---------------- matching ----------------

    def _match(self, session: ScanSession, record: BarcodeRecord, parent_hint: Optional[str],
               bom_provider: Optional[BomProvider], deadline: Deadline):
        ledger = session.ledger
        if parent_hint is not None:
            slot = self._child_slot(ledger, record, only_parent=parent_hint)
            if slot is None:
                raise AlreadyConsumed(
                    f"Barcode {record.value} is assembled into {parent_hint}; pack it with that parent")
            return slot[0], slot[1], None

        if session.is_box:
            return self._match_box(session, record)
        return self._match_batch(session, record, bom_provider, deadline)

    def _match_box(self, session: ScanSession, record: BarcodeRecord):
        ledger = session.ledger
        tree = session.tree
        top = [node for node in tree.roots() if self._matches_top(node, record)]
        for node in top:
            if ledger.remaining(node.id) > 0:
                return node.id, None, None

        slot = self._child_slot(ledger, record)
        if slot is not None:
            return slot[0], slot[1], None

        if top:
            node = top[0]
            raise QuantityExceeded(
                f"{node.display_name} already has all required scans "
                f"({ledger.counted(node.id)}/{ledger.required_for(node.id)})")

        child_nodes = [node for node, _, parent_id in tree.walk()
                       if parent_id is not None and self._matches_child(node, record)]
        waiting = [node for node in child_nodes if ledger.remaining(node.id) > 0]
        if waiting:
            parent = tree.parent(waiting[0].id)
            raise NoMatchingRequirement(
                f"Scan a {parent.display_name} before adding {waiting[0].display_name}")
        if child_nodes:
            raise QuantityExceeded(f"{child_nodes[0].display_name} already has all required scans")

        label = record.component_name or record.category_name or record.value
        raise NoMatchingRequirement(
            f"Kit {tree.kit_name or tree.kit_id} has no open slot for {label}",
            category=record.category_name)

    def _match_batch(self, session: ScanSession, record: BarcodeRecord,
                     bom_provider: Optional[BomProvider], deadline: Deadline):
        slot = self._child_slot(session.ledger, record)
        if slot is not None:
            return slot[0], slot[1], None

        root_id = f"component:{record.component_id}"
        if root_id in session.tree:
            return root_id, None, None

        template = None
        if bom_provider is not None and record.component_id is not None:
            deadline.check("loading component structure")
            template = bom_provider.get_component_template(record.component_id)

        template_root = template.roots()[0] if template is not None and template.root_ids else None
        root = RequirementNode(
            id=root_id,
            category_id=record.category_id,
            category_name=record.category_name,
            component_id=record.component_id,
            component_name=record.component_name,
            is_packet=template_root.is_packet if template_root else False,
            packet_quantity=template_root.packet_quantity if template_root else None,
        )
        return root_id, None, (root, template)

    def _child_slot(self, ledger: RequirementLedger, record: BarcodeRecord,
                    only_parent: Optional[str] = None) -> Optional[Tuple[RequirementId, str]]:
        candidates = []
        for node, _, parent_id in ledger.tree.walk():
            if parent_id is None or not self._matches_child(node, record):
                continue
            if ledger.remaining(node.id) <= 0:
                continue
            parents = ledger.open_parents(node.id)
            if only_parent is not None:
                parents = [value for value in parents if value == only_parent]
            if parents:
                candidates.append((node.id, parents))

        if not candidates:
            return None

        if self.tie_break == ChildTieBreak.LATEST_PARENT:
            order = {value: index for index, value in enumerate(ledger.counted_barcodes())}
            best = max(candidates, key=lambda item: max(order[value] for value in item[1]))
            parent = max(best[1], key=lambda value: order[value])
            return best[0], parent

        node_id, parents = candidates[0]
        return node_id, parents[0]

    @staticmethod
    def _matches_top(node: RequirementNode, record: BarcodeRecord) -> bool:
        if node.component_id is not None:
            return node.component_id == record.component_id
        return node.category_id is not None and node.category_id == record.category_id

    def _matches_child(self, node: RequirementNode, record: BarcodeRecord) -> bool:
        if self.child_match == ChildMatchPolicy.COMPONENT and node.component_id is not None:
            return node.component_id == record.component_id
        return node.category_id is not None and node.category_id == record.category_id


def _replay_order(records: List[BarcodeRecord]) -> List[BarcodeRecord]:
    """Scanned component barcodes by scan time, each parent before its children.

    A barcode taken over from a scan batch keeps its original scan time, which
    can be older than the parent it was packed under.
    """
    pending = sorted(
        (record for record in records
         if record.object_type == ObjectType.COMPONENT
         and record.status in (BarcodeStatus.SCANNED, BarcodeStatus.BOXED)),
        key=lambda item: item.sort_key,
    )
    values = {record.value for record in pending}
    ordered, placed = [], set()
    while pending:
        deferred = []
        for record in pending:
            if record.parent_barcode in values and record.parent_barcode not in placed:
                deferred.append(record)
            else:
                ordered.append(record)
                placed.add(record.value)
        if len(deferred) == len(pending):
            ordered.extend(deferred)
            break
        pending = deferred
    return ordered
