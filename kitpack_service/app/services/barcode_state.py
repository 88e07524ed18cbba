"""Lifecycle of a single barcode unit.

CREATED -> SCANNED -> BOXED, with UNSCAN (SCANNED -> CREATED) and
UNBOX (BOXED -> SCANNED) as the only backward edges. The machine owns no
storage; callers persist the status it returns.
"""
from typing import List

from ..enum.kit_packing_enum import BarcodeEvent, BarcodeStatus
from .exceptions import InvalidTransition

STATUS_TRANSITIONS = {
    (BarcodeStatus.CREATED, BarcodeEvent.SCAN): BarcodeStatus.SCANNED,
    (BarcodeStatus.SCANNED, BarcodeEvent.BOX): BarcodeStatus.BOXED,
    (BarcodeStatus.SCANNED, BarcodeEvent.UNSCAN): BarcodeStatus.CREATED,
    (BarcodeStatus.BOXED, BarcodeEvent.UNBOX): BarcodeStatus.SCANNED,
}


def transition(current: BarcodeStatus, event: BarcodeEvent, same_session: bool = False) -> BarcodeStatus:
    """Return the status reached by applying ``event`` to ``current``.

    ``same_session`` marks a SCAN replayed by the session that already scanned
    the barcode; it is a no-op instead of an error.
    """
    current = BarcodeStatus(current)
    event = BarcodeEvent(event)

    if event == BarcodeEvent.SCAN and current == BarcodeStatus.SCANNED and same_session:
        return current

    next_status = STATUS_TRANSITIONS.get((current, event))
    if next_status is None:
        raise InvalidTransition(current, event)
    return next_status


def allowed_events(current: BarcodeStatus) -> List[BarcodeEvent]:
    current = BarcodeStatus(current)
    return [event for (status, event) in STATUS_TRANSITIONS if status == current]


def can_transition(current: BarcodeStatus, event: BarcodeEvent) -> bool:
    return (BarcodeStatus(current), BarcodeEvent(event)) in STATUS_TRANSITIONS
