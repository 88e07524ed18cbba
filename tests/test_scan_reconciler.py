from datetime import datetime

import pytest

from kitpack_service.app.enum.kit_packing_enum import (BarcodeStatus, ChildMatchPolicy, ChildTieBreak,
                                                       ObjectType)
from kitpack_service.app.services.bom_tree import BomTree, RequirementNode
from kitpack_service.app.services.collaborators import BarcodeRecord
from kitpack_service.app.services.exceptions import (AlreadyConsumed, NoMatchingRequirement,
                                                     QuantityExceeded, UnknownBarcode,
                                                     WrongBarcodeType)
from kitpack_service.app.services.scan_reconciler import ScanReconciler
from kitpack_service.app.services.scan_session import ScanSession
from tests.fakes import (ASSEMBLY, BRACKET, CASING, SCREW, FakeBomProvider, FakeRegistry,
                         assembly_tree, k1_tree)


def scan(reconciler, session, registry, value, bom_provider=None):
    target = reconciler.locate(session, value, registry, bom_provider)
    return reconciler.apply(session.ledger, target)


def two_parent_tree():
    """Assembly and Casing both take one Screw of their own"""
    tree = BomTree(kit_id=4, kit_name="Two parents")
    tree.add_root(RequirementNode(id=1, category_id=ASSEMBLY, category_name="Assembly", component_id=400))
    tree.add_child(1, RequirementNode(id=2, category_id=SCREW, category_name="Screw"))
    tree.add_root(RequirementNode(id=3, category_id=CASING, category_name="Casing", component_id=200))
    tree.add_child(3, RequirementNode(id=4, category_id=SCREW, category_name="Screw"))
    return tree


@pytest.fixture
def registry():
    registry = FakeRegistry()
    registry.add_component("M1", 100, 10, "Motor", "Motor")
    registry.add_component("M2", 100, 10, "Motor", "Motor")
    registry.add_component("C1", 200, CASING, "Casing", "Casing")
    registry.add_component("A1", 400, ASSEMBLY, "Assembly", "Assembly")
    registry.add_component("B1", 500, BRACKET, "Bracket", "Bracket")
    registry.add_component("B2", 501, BRACKET, "Wide bracket", "Bracket")
    registry.add_component("S1", 300, SCREW, "Screw", "Screw")
    registry.add_box("BOX1", kit_id=1)
    return registry


def test_box_scan_fills_top_level_requirement(registry):
    session = ScanSession.for_box("BOX1", k1_tree())

    outcome = scan(ScanReconciler(), session, registry, "M1")

    assert outcome.requirement_id == 1
    assert outcome.level == 1
    assert outcome.progress.scanned_count == 1
    assert not outcome.session_complete
    assert scan(ScanReconciler(), session, registry, "C1").session_complete


def test_child_goes_under_the_scanned_parent(registry):
    session = ScanSession.for_box("BOX2", assembly_tree())
    reconciler = ScanReconciler()
    scan(reconciler, session, registry, "A1")

    outcome = scan(reconciler, session, registry, "B1")

    assert outcome.requirement_id == 11
    assert outcome.parent_barcode == "A1"
    assert outcome.parent_requirement_id == 10
    assert outcome.parent_satisfied is False
    assert outcome.progress.remaining == 1


def test_duplicate_scan_is_reported_not_counted(registry):
    session = ScanSession.for_box("BOX1", k1_tree())
    reconciler = ScanReconciler()
    scan(reconciler, session, registry, "M1")

    outcome = scan(reconciler, session, registry, "M1")

    assert outcome.duplicate
    assert outcome.progress.scanned_count == 1


def test_preorder_tie_break_prefers_the_first_requirement(registry):
    session = ScanSession.for_box("BOX4", two_parent_tree())
    reconciler = ScanReconciler(tie_break=ChildTieBreak.PREORDER)
    scan(reconciler, session, registry, "A1")
    scan(reconciler, session, registry, "C1")

    outcome = scan(reconciler, session, registry, "S1")

    assert outcome.requirement_id == 2
    assert outcome.parent_barcode == "A1"


def test_latest_parent_tie_break_prefers_the_last_scanned_parent(registry):
    session = ScanSession.for_box("BOX4", two_parent_tree())
    reconciler = ScanReconciler(tie_break=ChildTieBreak.LATEST_PARENT)
    scan(reconciler, session, registry, "A1")
    scan(reconciler, session, registry, "C1")

    outcome = scan(reconciler, session, registry, "S1")

    assert outcome.requirement_id == 4
    assert outcome.parent_barcode == "C1"


def test_component_policy_only_accepts_the_listed_component(registry):
    tree = BomTree(kit_id=6, kit_name="Strict")
    tree.add_root(RequirementNode(id=1, category_id=ASSEMBLY, category_name="Assembly", component_id=400))
    tree.add_child(1, RequirementNode(id=2, category_id=BRACKET, category_name="Bracket",
                                      component_id=500, component_name="Bracket", required_quantity=2))

    strict = ScanSession.for_box("BOX6", tree)
    reconciler = ScanReconciler(child_match=ChildMatchPolicy.COMPONENT)
    scan(reconciler, strict, registry, "A1")
    assert scan(reconciler, strict, registry, "B1").requirement_id == 2
    with pytest.raises(NoMatchingRequirement):
        scan(reconciler, strict, registry, "B2")

    loose = ScanSession.for_box("BOX7", tree.subtree(1))
    reconciler = ScanReconciler(child_match=ChildMatchPolicy.CATEGORY)
    scan(reconciler, loose, registry, "A1")
    assert scan(reconciler, loose, registry, "B2").requirement_id == 2


def test_lookup_errors(registry):
    session = ScanSession.for_box("BOX1", k1_tree())
    reconciler = ScanReconciler()

    with pytest.raises(UnknownBarcode):
        scan(reconciler, session, registry, "NOPE")
    with pytest.raises(WrongBarcodeType):
        scan(reconciler, session, registry, "BOX1")
    with pytest.raises(NoMatchingRequirement):
        scan(reconciler, session, registry, "S1")


def test_second_unit_of_a_filled_requirement_is_rejected(registry):
    session = ScanSession.for_box("BOX1", k1_tree())
    reconciler = ScanReconciler()
    scan(reconciler, session, registry, "M1")

    with pytest.raises(QuantityExceeded):
        scan(reconciler, session, registry, "M2")


def test_child_before_parent_is_rejected(registry):
    session = ScanSession.for_box("BOX2", assembly_tree())

    with pytest.raises(NoMatchingRequirement) as exc_info:
        scan(ScanReconciler(), session, registry, "B1")
    assert "Assembly" in exc_info.value.message


def test_boxed_barcode_is_consumed(registry):
    registry.records["M1"].status = BarcodeStatus.BOXED
    registry.records["M1"].box_barcode = "BOX9"
    session = ScanSession.for_box("BOX1", k1_tree())

    with pytest.raises(AlreadyConsumed):
        scan(ScanReconciler(), session, registry, "M1")


def test_barcode_from_another_batch_is_consumed_in_flat_mode(registry):
    registry.records["M1"].status = BarcodeStatus.SCANNED
    registry.records["M1"].session_id = "BATCH-OTHER"
    session = ScanSession.for_batch("BATCH-1")

    with pytest.raises(AlreadyConsumed):
        scan(ScanReconciler(), session, registry, "M1")


def test_flat_mode_grafts_the_component_structure(registry):
    session = ScanSession.for_batch("BATCH-1")
    provider = FakeBomProvider(assembly_tree())
    reconciler = ScanReconciler()

    parent = scan(reconciler, session, registry, "A1", provider)
    child = scan(reconciler, session, registry, "B1", provider)
    plain = scan(reconciler, session, registry, "S1", provider)

    assert parent.requirement_id == "component:400"
    assert child.requirement_id == "component:400/11"
    assert child.parent_barcode == "A1"
    assert plain.requirement_id == "component:300"
    assert [str(item) for item in session.ledger.unmet()] == ["Bracket (1 more)"]


def test_flat_mode_counts_repeated_components_on_one_entry(registry):
    registry.add_component("A2", 400, ASSEMBLY, "Assembly", "Assembly")
    session = ScanSession.for_batch("BATCH-1")
    provider = FakeBomProvider(assembly_tree())
    reconciler = ScanReconciler()
    scan(reconciler, session, registry, "A1", provider)

    second = scan(reconciler, session, registry, "A2", provider)
    bracket = scan(reconciler, session, registry, "B1", provider)

    assert second.requirement_id == "component:400"
    assert bracket.requirement_id == "component:400/11"
    assert session.ledger.required_for("component:400/11") == 4


def test_classify_leaves_the_session_untouched(registry):
    session = ScanSession.for_box("BOX1", k1_tree())

    outcome = ScanReconciler().classify(session, "M1", registry)

    assert outcome.requirement_id == 1
    assert outcome.progress.scanned_count == 1
    assert session.ledger.counted(1) == 0
    assert registry.status_of("M1") == BarcodeStatus.CREATED
    assert registry.status_changes == []


def test_replay_places_parents_before_their_children():
    session = ScanSession.for_box("BOX2", assembly_tree())
    records = [
        BarcodeRecord(id=2, value="B1", object_type=ObjectType.COMPONENT, object_id=500,
                      status=BarcodeStatus.SCANNED, component_id=500, category_id=BRACKET,
                      parent_barcode="A1", scanned_at=datetime(2024, 1, 1, 9)),
        BarcodeRecord(id=1, value="A1", object_type=ObjectType.COMPONENT, object_id=400,
                      status=BarcodeStatus.SCANNED, component_id=400, category_id=ASSEMBLY,
                      scanned_at=datetime(2024, 1, 1, 10)),
    ]

    skipped = ScanReconciler().replay(session, records)

    assert skipped == []
    assert session.ledger.counted_barcodes() == ["A1", "B1"]
    assert session.ledger.parent_barcode_of("B1") == "A1"


def test_replay_skips_barcodes_that_no_longer_fit(registry):
    session = ScanSession.for_box("BOX1", k1_tree())
    records = [registry.resolve(value) for value in ("M1", "M2", "C1")]
    for record in records:
        record.status = BarcodeStatus.SCANNED

    skipped = ScanReconciler().replay(session, records)

    assert skipped == ["M2"]
    assert session.ledger.is_complete()
