import pytest

from kitpack_service.app.enum.kit_packing_enum import BarcodeEvent, BarcodeStatus
from kitpack_service.app.services.barcode_state import allowed_events, can_transition, transition
from kitpack_service.app.services.exceptions import InvalidTransition


@pytest.mark.parametrize("current, event, expected", [
    (BarcodeStatus.CREATED, BarcodeEvent.SCAN, BarcodeStatus.SCANNED),
    (BarcodeStatus.SCANNED, BarcodeEvent.BOX, BarcodeStatus.BOXED),
    (BarcodeStatus.SCANNED, BarcodeEvent.UNSCAN, BarcodeStatus.CREATED),
    (BarcodeStatus.BOXED, BarcodeEvent.UNBOX, BarcodeStatus.SCANNED),
])
def test_allowed_transitions(current, event, expected):
    assert transition(current, event) == expected


@pytest.mark.parametrize("current, event", [
    (BarcodeStatus.CREATED, BarcodeEvent.BOX),
    (BarcodeStatus.CREATED, BarcodeEvent.UNSCAN),
    (BarcodeStatus.BOXED, BarcodeEvent.SCAN),
    (BarcodeStatus.BOXED, BarcodeEvent.UNSCAN),
    (BarcodeStatus.SCANNED, BarcodeEvent.SCAN),
    (BarcodeStatus.SCANNED, BarcodeEvent.UNBOX),
])
def test_rejected_transitions(current, event):
    with pytest.raises(InvalidTransition) as exc_info:
        transition(current, event)

    assert exc_info.value.current == current
    assert exc_info.value.attempted == event
    assert exc_info.value.details == {"current": current.value, "attempted": event.value}


def test_rescan_by_the_same_session_is_a_no_op():
    assert transition(BarcodeStatus.SCANNED, BarcodeEvent.SCAN, same_session=True) == BarcodeStatus.SCANNED


def test_plain_strings_are_accepted():
    assert transition("CREATED", "SCAN") == BarcodeStatus.SCANNED


def test_allowed_events():
    assert allowed_events(BarcodeStatus.SCANNED) == [BarcodeEvent.BOX, BarcodeEvent.UNSCAN]
    assert allowed_events(BarcodeStatus.BOXED) == [BarcodeEvent.UNBOX]
    assert can_transition(BarcodeStatus.CREATED, BarcodeEvent.SCAN)
    assert not can_transition(BarcodeStatus.CREATED, BarcodeEvent.UNBOX)
