"""Owns packing sessions (one per box barcode) and flat scan batches.

Sessions are kept in an in-process cache and validated against the version
stored by the session store; a cache miss, or a version written by another
process, rebuilds the session by replaying the barcodes the registry links to
it. Work on one session is serialized by a per-session lock, work on
different sessions runs in parallel.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from shared.core.config import settings

from ..enum.kit_packing_enum import (BarcodeEvent, BarcodeStatus, ObjectType, SessionMode,
                                     SessionStatus)
from .barcode_state import transition
from .bom_tree import BomTree
from .collaborators import BarcodeRecord, ScanContext
from .concurrency import SessionLocks
from .exceptions import (AlreadyConsumed, BomValidationError, IncompleteRequirements,
                         KitMismatch, KitNotFound, KitPackError, LinkedChildrenPresent,
                         NotScanned, OperationTimeout, SessionClosed, SessionNotFound,
                         UnknownBarcode, WrongBarcodeType)
from .scan_reconciler import ScanOutcome, ScanReconciler
from .scan_session import ScanSession

logger = logging.getLogger(__name__)


class SessionCoordinator:
    def __init__(self, reconciler: Optional[ScanReconciler] = None,
                 locks: Optional[SessionLocks] = None):
        self.reconciler = reconciler or ScanReconciler()
        self.locks = locks or SessionLocks()
        self._cache: Dict[str, ScanSession] = {}
        self._cache_guard = threading.Lock()

    # ---------------- session lifecycle ----------------

    def start_session(self, ctx: ScanContext, kit_id: Optional[int] = None,
                      box_barcode: Optional[str] = None, batch_id: Optional[str] = None) -> ScanSession:
        """Start or resume a box packing session (``box_barcode``) or a flat
        scan batch (no box barcode)."""
        if box_barcode:
            return self._start_box(ctx, box_barcode, kit_id)
        return self._start_batch(ctx, batch_id)

    def _start_box(self, ctx: ScanContext, box_barcode: str, kit_id: Optional[int]) -> ScanSession:
        with self.locks.hold(box_barcode, ctx.deadline):
            box = self._resolve_box(ctx, box_barcode)
            if kit_id is not None and box.object_id != kit_id:
                raise KitMismatch(
                    f"Box {box_barcode} belongs to kit {box.object_id}, not kit {kit_id}",
                    box_kit_id=box.object_id)
            if box.status == BarcodeStatus.BOXED:
                raise SessionClosed(f"Box {box_barcode} is already completed")

            if box.status == BarcodeStatus.SCANNED:
                session = self._session(ctx, box_barcode, SessionMode.BOX)
                session.resumed = True
                if ctx.store.load(box_barcode) is None:
                    with self._transaction(ctx, box_barcode):
                        self._persist(ctx, session)
                logger.info("Resumed box %s for kit %s with %s scans",
                            box_barcode, session.kit_id, len(session.ledger.counted_barcodes()))
                return session

            tree = self._kit_tree(ctx, box.object_id)
            if not tree.root_ids:
                raise BomValidationError(f"Kit {tree.kit_name or box.object_id} has no components to pack")

            session = ScanSession.for_box(box_barcode, tree, started_by=ctx.actor_id)
            existing = ctx.store.load(box_barcode)
            session.version = existing.version if existing else 0
            with self._transaction(ctx, box_barcode):
                new_status = transition(box.status, BarcodeEvent.SCAN)
                ctx.deadline.check("opening box")
                ctx.registry.set_status(box_barcode, new_status, ctx.actor_id, datetime.utcnow())
                ctx.registry.link_session(box_barcode, box_barcode)
                self._persist(ctx, session)
            logger.info("Started box %s for kit %s", box_barcode, session.kit_id)
            return session

    def _start_batch(self, ctx: ScanContext, batch_id: Optional[str]) -> ScanSession:
        batch_id = batch_id or f"BATCH-{uuid.uuid4().hex[:12].upper()}"
        with self.locks.hold(batch_id, ctx.deadline):
            ctx.deadline.check("loading scan batch")
            if ctx.store.load(batch_id) is not None:
                session = self._session(ctx, batch_id, SessionMode.BATCH)
                session.resumed = True
                logger.info("Resumed scan batch %s", batch_id)
                return session

            session = ScanSession.for_batch(batch_id, started_by=ctx.actor_id)
            with self._transaction(ctx, batch_id):
                self._persist(ctx, session)
            logger.info("Started scan batch %s", batch_id)
            return session

    def get_status(self, ctx: ScanContext, session_id: str,
                   mode: SessionMode = SessionMode.BOX) -> ScanSession:
        with self.locks.hold(session_id, ctx.deadline):
            return self._session(ctx, session_id, mode)

    def summarize(self, ctx: ScanContext, session_id: str,
                  mode: SessionMode = SessionMode.BOX) -> Dict[str, Any]:
        """Status view of a session, read while its lock is held."""
        with self.locks.hold(session_id, ctx.deadline):
            return self._session(ctx, session_id, mode).summary()

    # ---------------- scanning ----------------

    def scan(self, ctx: ScanContext, session_id: str, barcode_value: str,
             mode: SessionMode = SessionMode.BOX) -> ScanOutcome:
        with self.locks.hold(session_id, ctx.deadline):
            session = self._open_session(ctx, session_id, mode)
            return self._scan_locked(ctx, session, barcode_value)

    def scan_many(self, ctx: ScanContext, session_id: str, barcode_values: List[str],
                  mode: SessionMode = SessionMode.BATCH) -> List[Dict[str, Any]]:
        """Apply scans in order under a single lock hold.

        Each scan sees the session state left by the previous one, so a parent
        scanned earlier in the list takes the children that follow it. A
        rejected scan is reported and the rest of the list still runs; a
        timeout reports every unprocessed scan.
        """
        results: List[Dict[str, Any]] = []
        with self.locks.hold(session_id, ctx.deadline):
            session = self._open_session(ctx, session_id, mode)
            for index, value in enumerate(barcode_values):
                try:
                    outcome = self._scan_locked(ctx, session, value)
                except OperationTimeout as exc:
                    for pending in barcode_values[index:]:
                        results.append({"barcode": pending, "accepted": False,
                                        "error": exc.message, "status_code": exc.status_code})
                    break
                except KitPackError as exc:
                    results.append({"barcode": value, "accepted": False,
                                    "error": exc.message, "status_code": exc.status_code})
                    # a failed write drops the cached session, continue on a fresh replay
                    session = self._open_session(ctx, session_id, mode)
                else:
                    results.append({"barcode": value, "accepted": True, "outcome": outcome.as_dict()})
        return results

    def classify_preview(self, ctx: ScanContext, session_id: str, barcode_value: str,
                         mode: SessionMode = SessionMode.BOX) -> ScanOutcome:
        with self.locks.hold(session_id, ctx.deadline):
            session = self._open_session(ctx, session_id, mode)
            return self.reconciler.classify(
                session, barcode_value, ctx.registry, ctx.bom_provider, ctx.deadline, ctx.store.is_open)

    def _scan_locked(self, ctx: ScanContext, session: ScanSession, barcode_value: str) -> ScanOutcome:
        try:
            target = self.reconciler.locate(
                session, barcode_value, ctx.registry, ctx.bom_provider, ctx.deadline, ctx.store.is_open)
        except KitPackError as exc:
            logger.info("Session %s rejected %s: %s", session.id, barcode_value, exc.message)
            raise

        if target.duplicate:
            outcome = self.reconciler.apply(session.ledger, target)
            outcome.status = target.record.status
            return outcome

        record = target.record
        with self._transaction(ctx, session.id):
            outcome = self.reconciler.apply(session.ledger, target)
            ctx.deadline.check("recording scan")
            now = datetime.utcnow()
            if not target.adopted:
                new_status = transition(record.status, BarcodeEvent.SCAN,
                                        same_session=record.session_id == session.id)
                if new_status != record.status:
                    ctx.registry.set_status(record.value, new_status, ctx.actor_id, now)
                ctx.registry.link_session(record.value, session.id)
                outcome.status = new_status
            if session.is_box:
                ctx.registry.link_box(record.value, session.box_barcode)
            if outcome.parent_barcode is not None and outcome.parent_barcode != record.parent_barcode:
                ctx.registry.link_parent(record.value, outcome.parent_barcode)
            self._persist(ctx, session)
        return outcome

    # ---------------- undo ----------------

    def remove_item(self, ctx: ScanContext, session_id: str, barcode_value: str,
                    mode: SessionMode = SessionMode.BOX) -> Dict[str, Any]:
        """Take a scanned barcode back out of an open session.

        A barcode first scanned by this session goes back to CREATED; one taken
        over from a finished scan batch stays SCANNED and only leaves the box.
        """
        with self.locks.hold(session_id, ctx.deadline):
            session = self._open_session(ctx, session_id, mode)
            ledger = session.ledger
            requirement_id = ledger.requirement_of(barcode_value)
            ctx.deadline.check("resolving barcode")
            record = ctx.registry.resolve(barcode_value)
            if record is None:
                raise UnknownBarcode(f"Barcode {barcode_value} not found", barcode=barcode_value)
            if requirement_id is None:
                raise NotScanned(f"Barcode {barcode_value} was not scanned in this session")

            children = ledger.linked_children(barcode_value)
            if children:
                raise LinkedChildrenPresent(
                    f"Remove the sub-components scanned for {barcode_value} first: {', '.join(children)}",
                    children=children)

            scanned_here = record.session_id == session.id
            new_status = record.status
            if scanned_here:
                new_status = transition(record.status, BarcodeEvent.UNSCAN)

            with self._transaction(ctx, session.id):
                progress = ledger.apply_undo(requirement_id, barcode_value)
                ctx.deadline.check("removing scan")
                if scanned_here:
                    ctx.registry.set_status(barcode_value, new_status, ctx.actor_id, datetime.utcnow())
                    ctx.registry.link_session(barcode_value, None)
                if record.box_barcode is not None:
                    ctx.registry.link_box(barcode_value, None)
                if record.parent_barcode is not None:
                    ctx.registry.link_parent(barcode_value, None)
                self._persist(ctx, session)

            logger.info("Session %s removed %s", session.id, barcode_value)
            return {
                "barcode": barcode_value,
                "status": new_status.value,
                "requirement": progress.as_dict(),
                "session_complete": ledger.is_complete(),
            }

    # ---------------- completion ----------------

    def complete(self, ctx: ScanContext, session_id: str,
                 mode: SessionMode = SessionMode.BOX) -> ScanSession:
        """Close the session once every requirement is satisfied.

        Box sessions move every counted barcode and the box itself to BOXED in
        one transaction; scan batches keep their barcodes SCANNED.
        """
        with self.locks.hold(session_id, ctx.deadline):
            session = self._open_session(ctx, session_id, mode)
            ledger = session.ledger
            counted = ledger.counted_barcodes()
            if not session.is_box and not counted:
                raise NotScanned("No scanned barcodes to submit")
            unmet = ledger.unmet()
            if unmet or not ledger.is_complete():
                raise IncompleteRequirements(unmet)

            to_box: List[BarcodeRecord] = []
            if session.is_box:
                for value in counted + [session.box_barcode]:
                    ctx.deadline.check("validating box contents")
                    record = ctx.registry.resolve(value)
                    if record is None:
                        raise UnknownBarcode(f"Barcode {value} not found", barcode=value)
                    # items left in a reopened box are already packed here
                    if record.status == BarcodeStatus.BOXED and record.box_barcode == session.box_barcode:
                        continue
                    transition(record.status, BarcodeEvent.BOX)
                    to_box.append(record)

            with self._transaction(ctx, session.id):
                now = datetime.utcnow()
                for record in to_box:
                    ctx.deadline.check("boxing barcodes")
                    ctx.registry.set_status(record.value, BarcodeStatus.BOXED, ctx.actor_id, now)
                session.status = SessionStatus.COMPLETE
                self._persist(ctx, session)
            self._forget(session.id)

            logger.info("Completed %s %s with %s barcodes",
                        "box" if session.is_box else "scan batch", session.id, len(counted))
            return session

    # ---------------- administrative ----------------

    def unbox_item(self, ctx: ScanContext, box_barcode: str, barcode_value: str) -> ScanSession:
        """Take one barcode back out of a box: BOXED -> SCANNED, and the box
        session reopens."""
        with self.locks.hold(box_barcode, ctx.deadline):
            session = self._session(ctx, box_barcode, SessionMode.BOX)
            ledger = session.ledger
            requirement_id = ledger.requirement_of(barcode_value)
            if requirement_id is None:
                raise NotScanned(f"Barcode {barcode_value} is not packed in box {box_barcode}")
            children = ledger.linked_children(barcode_value)
            if children:
                raise LinkedChildrenPresent(
                    f"Unbox the sub-components of {barcode_value} first: {', '.join(children)}",
                    children=children)

            ctx.deadline.check("resolving barcodes")
            record = ctx.registry.resolve(barcode_value)
            box = self._resolve_box(ctx, box_barcode)
            item_status = transition(record.status, BarcodeEvent.UNBOX) \
                if record.status == BarcodeStatus.BOXED else record.status
            box_status = transition(box.status, BarcodeEvent.UNBOX) \
                if box.status == BarcodeStatus.BOXED else box.status

            with self._transaction(ctx, session.id):
                now = datetime.utcnow()
                ledger.apply_undo(requirement_id, barcode_value)
                if item_status != record.status:
                    ctx.registry.set_status(barcode_value, item_status, ctx.actor_id, now)
                ctx.registry.link_box(barcode_value, None)
                ctx.registry.link_session(barcode_value, None)
                if record.parent_barcode is not None:
                    ctx.registry.link_parent(barcode_value, None)
                if box_status != box.status:
                    ctx.registry.set_status(box_barcode, box_status, ctx.actor_id, now)
                session.status = SessionStatus.OPEN
                self._persist(ctx, session)

            logger.info("Unboxed %s from box %s", barcode_value, box_barcode)
            return session

    def unscan_barcode(self, ctx: ScanContext, barcode_value: str) -> Dict[str, Any]:
        """Return a scanned barcode that is not in any box to CREATED."""
        ctx.deadline.check("resolving barcode")
        record = ctx.registry.resolve(barcode_value)
        if record is None:
            raise UnknownBarcode(f"Barcode {barcode_value} not found", barcode=barcode_value)
        if record.object_type != ObjectType.COMPONENT:
            raise WrongBarcodeType(f"{barcode_value} is a box barcode and cannot be unscanned")
        if record.box_barcode is not None:
            raise AlreadyConsumed(f"Barcode {barcode_value} is packed in box {record.box_barcode}, remove it from the box first")
        new_status = transition(record.status, BarcodeEvent.UNSCAN)

        session_id = record.session_id
        if session_id is not None and ctx.store.is_open(session_id):
            stored = ctx.store.load(session_id)
            return self.remove_item(ctx, session_id, barcode_value, stored.mode)

        children = [child.value for child in ctx.registry.list_children(barcode_value)
                    if child.status != BarcodeStatus.CREATED]
        if children:
            raise LinkedChildrenPresent(
                f"Unscan the sub-components of {barcode_value} first: {', '.join(children)}",
                children=children)

        lock_key = session_id or barcode_value
        with self.locks.hold(lock_key, ctx.deadline):
            with self._transaction(ctx, lock_key):
                ctx.registry.set_status(barcode_value, new_status, ctx.actor_id, datetime.utcnow())
                ctx.registry.link_session(barcode_value, None)
                if record.parent_barcode is not None:
                    ctx.registry.link_parent(barcode_value, None)
                if session_id is not None and ctx.store.load(session_id) is not None:
                    self._forget(session_id)
                    batch = self._session(ctx, session_id, SessionMode.BATCH)
                    self._persist(ctx, batch)
                else:
                    ctx.commit()
        logger.info("Unscanned %s", barcode_value)
        return {"barcode": barcode_value, "status": new_status.value, "session_id": session_id}

    # ---------------- internals ----------------

    def _open_session(self, ctx: ScanContext, session_id: str, mode: SessionMode) -> ScanSession:
        session = self._session(ctx, session_id, mode)
        if not session.is_open:
            label = "Box" if session.is_box else "Scan batch"
            raise SessionClosed(f"{label} {session_id} is already completed")
        return session

    def _session(self, ctx: ScanContext, session_id: str, mode: SessionMode) -> ScanSession:
        ctx.deadline.check("loading session")
        record = ctx.store.load(session_id)
        cached = self._cached(session_id)
        if cached is not None and record is not None and cached.version == record.version:
            return cached

        if record is not None:
            mode = record.mode
        if mode == SessionMode.BOX:
            session = self._rebuild_box(ctx, session_id, record)
        else:
            if record is None:
                raise SessionNotFound(f"Scan batch {session_id} not found")
            session = ScanSession.for_batch(session_id, status=record.status, version=record.version,
                                            started_by=record.started_by)
            ctx.deadline.check("listing batch scans")
            self._replay(session, ctx.registry.list_by_session(session_id), ctx)
        self._remember(session)
        return session

    def _rebuild_box(self, ctx: ScanContext, box_barcode: str, record) -> ScanSession:
        box = self._resolve_box(ctx, box_barcode)
        if box.status == BarcodeStatus.CREATED:
            raise SessionNotFound(f"Packing has not started for box {box_barcode}")
        tree = self._kit_tree(ctx, box.object_id)
        status = SessionStatus.OPEN if box.status == BarcodeStatus.SCANNED else SessionStatus.COMPLETE
        session = ScanSession.for_box(
            box_barcode, tree, status=status,
            version=record.version if record else 0,
            started_by=record.started_by if record else box.scanned_by,
        )
        ctx.deadline.check("listing box contents")
        self._replay(session, ctx.registry.list_by_box(box_barcode), ctx)
        return session

    def _replay(self, session: ScanSession, records: List[BarcodeRecord], ctx: ScanContext) -> None:
        skipped = self.reconciler.replay(session, records, ctx.bom_provider)
        if skipped:
            logger.warning("Session %s replay skipped %s barcodes", session.id, len(skipped))

    def _resolve_box(self, ctx: ScanContext, box_barcode: str) -> BarcodeRecord:
        ctx.deadline.check("resolving box barcode")
        box = ctx.registry.resolve(box_barcode)
        if box is None:
            raise UnknownBarcode(f"Box barcode {box_barcode} not found", barcode=box_barcode)
        if box.object_type != ObjectType.BOX:
            raise WrongBarcodeType(f"{box_barcode} is not a box barcode")
        return box

    def _kit_tree(self, ctx: ScanContext, kit_id: int) -> BomTree:
        ctx.deadline.check("loading kit components")
        tree = ctx.bom_provider.get_kit_bom(kit_id)
        if tree is None:
            raise KitNotFound(f"Kit {kit_id} not found")
        return tree

    def _persist(self, ctx: ScanContext, session: ScanSession) -> None:
        ctx.deadline.check("saving session")
        session.version = ctx.store.save(session.to_record(), session.version)
        ctx.commit()
        self._remember(session)

    @contextmanager
    def _transaction(self, ctx: ScanContext, session_id: str):
        try:
            yield
        except Exception:
            ctx.rollback()
            self._forget(session_id)
            raise

    def _cached(self, session_id: str) -> Optional[ScanSession]:
        with self._cache_guard:
            return self._cache.get(session_id)

    def _remember(self, session: ScanSession) -> None:
        with self._cache_guard:
            self._cache[session.id] = session

    def _forget(self, session_id: str) -> None:
        with self._cache_guard:
            self._cache.pop(session_id, None)

    def clear_cache(self) -> None:
        with self._cache_guard:
            self._cache.clear()


def build_coordinator() -> SessionCoordinator:
    reconciler = ScanReconciler(settings.CHILD_MATCH_POLICY, settings.CHILD_TIE_BREAK)
    return SessionCoordinator(reconciler)


coordinator = build_coordinator()
