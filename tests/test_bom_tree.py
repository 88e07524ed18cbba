import pytest

from kitpack_service.app.services.bom_tree import BomTree, RequirementNode
from kitpack_service.app.services.exceptions import BomValidationError
from tests.fakes import ASSEMBLY, BRACKET, MOTOR, SCREW, assembly_tree, k1_tree


def nested_tree():
    tree = BomTree(kit_id=5, kit_name="Gearbox")
    tree.add_root(RequirementNode(id=1, category_id=ASSEMBLY, category_name="Assembly", component_id=400))
    tree.add_child(1, RequirementNode(id=2, category_id=BRACKET, category_name="Bracket", required_quantity=2))
    tree.add_child(2, RequirementNode(id=3, category_id=SCREW, category_name="Screw", required_quantity=4))
    tree.add_root(RequirementNode(id=4, category_id=MOTOR, category_name="Motor", component_id=100))
    return tree


def test_flatten_then_rebuild_gives_the_same_tree():
    tree = nested_tree()
    rows = tree.flatten()

    assert [(row.id, row.level, row.parent_id) for row in rows] == [
        (1, 1, None), (2, 2, 1), (3, 3, 2), (4, 1, None)]
    assert BomTree.rebuild(rows, kit_id=5, kit_name="Gearbox") == tree
    assert BomTree.rebuild([row.as_dict() for row in rows], kit_id=5, kit_name="Gearbox") == tree


def test_nested_round_trip():
    tree = nested_tree()
    nested = tree.to_nested()

    assert nested[0]["children"][0]["children"][0]["level"] == 3
    assert BomTree.from_nested(nested, kit_id=5, kit_name="Gearbox") == tree


def test_rebuild_rejects_inconsistent_levels():
    rows = [row.as_dict() for row in nested_tree().flatten()]
    rows[1]["level"] = 3

    with pytest.raises(BomValidationError):
        BomTree.rebuild(rows)


def test_fourth_level_is_rejected():
    tree = nested_tree()

    with pytest.raises(BomValidationError):
        tree.add_child(3, RequirementNode(id=9, category_id=MOTOR))
    assert 9 not in tree


def test_duplicate_category_among_siblings_is_rejected():
    tree = k1_tree()

    with pytest.raises(BomValidationError):
        tree.add_root(RequirementNode(id=3, category_id=MOTOR, category_name="Motor"))


def test_same_category_allowed_under_different_parents():
    tree = BomTree()
    tree.add_root(RequirementNode(id=1, category_id=ASSEMBLY))
    tree.add_root(RequirementNode(id=2, category_id=MOTOR))
    tree.add_child(1, RequirementNode(id=3, category_id=SCREW))
    tree.add_child(2, RequirementNode(id=4, category_id=SCREW))

    assert tree.parent_id(3) == 1
    assert tree.parent_id(4) == 2


def test_repeated_root_categories_allowed_when_not_unique():
    tree = BomTree(unique_categories=False)
    tree.add_root(RequirementNode(id="a", category_id=SCREW))
    tree.add_root(RequirementNode(id="b", category_id=SCREW))

    assert tree.root_ids == ["a", "b"]


@pytest.mark.parametrize("node", [
    RequirementNode(id=7, category_id=SCREW, required_quantity=0),
    RequirementNode(id=7, category_id=SCREW, is_packet=True),
    RequirementNode(id=1, category_id=SCREW),
])
def test_invalid_nodes_are_rejected(node):
    tree = k1_tree()

    with pytest.raises(BomValidationError):
        tree.add_root(node)


def test_remove_drops_the_whole_subtree():
    tree = nested_tree()

    removed = tree.remove(2)

    assert sorted(removed) == [2, 3]
    assert tree.node(1).child_ids == []
    assert 3 not in tree
    with pytest.raises(BomValidationError):
        tree.parent_id(3)


def test_levels_ancestors_and_preorder():
    tree = nested_tree()

    assert tree.level(3) == 3
    assert tree.ancestors(3) == [2, 1]
    assert tree.preorder_index() == {1: 0, 2: 1, 3: 2, 4: 3}
    assert [node.id for node in tree.children(1)] == [2]


def test_subtree_is_rerooted():
    sub = nested_tree().subtree(2)

    assert sub.root_ids == [2]
    assert sub.level(3) == 2


def test_graft_namespaces_template_children():
    template = assembly_tree().subtree(10)
    batch = BomTree(unique_categories=False)

    batch.graft(RequirementNode(id="component:400", category_id=ASSEMBLY, component_id=400), template)

    assert batch.root_ids == ["component:400"]
    assert batch.node("component:400").child_ids == ["component:400/11"]
    assert batch.node("component:400/11").required_quantity == 2
    assert batch.parent_id("component:400/11") == "component:400"


def test_unit_value_of_packets():
    assert RequirementNode(id=1, is_packet=True, packet_quantity=12).unit_value == 12
    assert RequirementNode(id=1).unit_value == 1
