"""Tests for :mod:`notationlab.notation.store`."""

from __future__ import annotations

import pytest

from notationlab.errors import InvariantViolation, UnknownElementError, UnsupportedFeatureError
from notationlab.notation.model import (
    Position,
    Size,
    append_child,
    container_element,
    make_element,
    shape,
)
from notationlab.notation.store import NotationModel


def make_model() -> tuple[NotationModel, list]:
    root = container_element(element_id="root", kind="diagram")
    append_child(root, shape(element_id="a", position=Position(0, 0), size=Size(10, 10)))
    append_child(root, shape(element_id="b", position=Position(1, 1), size=Size(5, 5)))
    model = NotationModel(root)
    received: list = []
    model.notifier.subscribe(received.append)
    return model, received


def test_default_model_has_an_empty_diagram_root():
    model = NotationModel()

    assert model.root.kind == "diagram"
    assert len(model) == 1
    assert model.get_feature(model.root.id, "children") == ()


def test_set_feature_records_and_publishes_the_change():
    model, received = make_model()
    target = Position(5, 5)

    records = model.set_feature("a", "position", target)

    assert len(records) == 1
    assert records[0].old_value == Position(0, 0)
    assert records[0].new_value is target
    assert received == records
    assert model.get_feature("a", "position") is target
    assert target.container == ("a", "position")


def test_replaced_value_becomes_unowned():
    model, _ = make_model()
    old = model.get_feature("a", "position")

    model.set_feature("a", "position", Position(5, 5))

    assert old.container is None
    assert model.ownership_count(old) == 0


def test_moving_contained_value_detaches_before_attach():
    model, received = make_model()
    moved = model.get_feature("a", "position")

    records = model.set_feature("b", "position", moved)

    assert len(records) == 2
    detach, attach = records
    assert (detach.element_id, detach.feature, detach.new_value) == ("a", "position", None)
    assert detach.old_value is moved
    assert (attach.element_id, attach.feature, attach.new_value) == ("b", "position", moved)
    assert model.get_feature("a", "position") is None
    assert not model.is_set("a", "position")
    assert model.get_feature("b", "position") is moved
    assert model.owner_of(moved) == ("b", "position")
    assert model.ownership_count(moved) == 1
    assert received == records
    model.check_integrity()


def test_setting_same_value_twice_emits_one_touch_per_call():
    model, received = make_model()
    value = Position(3, 3)

    first = model.set_feature("a", "position", value)
    second = model.set_feature("a", "position", value)
    third = model.set_feature("a", "position", Position(3, 3))

    assert len(first) == len(second) == len(third) == 1
    assert not first[0].is_touch
    assert second[0].is_touch and third[0].is_touch
    assert model.get_feature("a", "position") is value
    assert model.ownership_count(value) == 1
    assert len(received) == 3


def test_touch_can_be_suppressed():
    model, received = make_model()
    current = model.get_feature("a", "size")

    assert model.set_feature("a", "size", current, touch=False) == []
    assert received == []


def test_unset_feature_detaches_value():
    model, _ = make_model()
    size = model.get_feature("a", "size")

    records = model.unset_feature("a", "size")

    assert records[0].new_value is None
    assert size.container is None
    assert model.unset_feature("a", "size") == []


def test_validation_errors_leave_the_model_untouched():
    model, received = make_model()
    before = model.to_payload()

    with pytest.raises(UnknownElementError):
        model.set_feature("missing", "position", Position())
    with pytest.raises(UnsupportedFeatureError):
        model.set_feature("root", "position", Position())
    with pytest.raises(UnsupportedFeatureError):
        model.set_feature("root", "children", ())
    with pytest.raises(UnsupportedFeatureError):
        model.get_feature("a", "color")

    assert model.to_payload() == before
    assert received == []


def test_unknown_element_error_is_a_key_error():
    model, _ = make_model()

    with pytest.raises(KeyError):
        model.get_element("missing")


def test_add_element_inserts_at_index_and_registers_subtree():
    model, received = make_model()
    lane = shape(element_id="lane", container=True)
    append_child(lane, shape(element_id="inner"))

    records = model.add_element("root", lane, index=0)

    assert model.get_feature("root", "children") == ("lane", "a", "b")
    assert "inner" in model
    assert model.parent_of("inner") == "lane"
    assert records[-1].old_value == ("a", "b")
    assert received == records
    model.check_integrity()


def test_add_element_rejects_non_container_parent_and_duplicate_ids():
    model, _ = make_model()

    with pytest.raises(UnsupportedFeatureError):
        model.add_element("a", shape(element_id="c"))
    with pytest.raises(InvariantViolation):
        model.add_element("root", shape(element_id="a"))


def test_add_element_rejects_containment_cycle():
    model, received = make_model()
    lane = shape(element_id="lane", container=True)
    sub = shape(element_id="sub", container=True)
    append_child(lane, sub)
    model.add_element("root", lane)
    received.clear()

    with pytest.raises(InvariantViolation):
        model.add_element("sub", lane)

    assert model.parent_of("lane") == "root"
    assert received == []


def test_moving_element_between_containers():
    model, _ = make_model()
    model.add_element("root", shape(element_id="lane", container=True))

    records = model.add_element("lane", model.get_element("a"))

    assert [record.element_id for record in records] == ["root", "lane"]
    assert model.get_feature("root", "children") == ("b", "lane")
    assert model.get_feature("lane", "children") == ("a",)
    model.check_integrity()


def test_element_valued_feature_moves_between_owners():
    model, _ = make_model()
    first = make_element("host", element_id="h1", capabilities={"label"})
    second = make_element("host", element_id="h2", capabilities={"label"})
    model.add_element("root", first)
    model.add_element("root", second)
    label = make_element("label", element_id="lbl")

    model.set_feature("h1", "label", label)
    records = model.set_feature("h2", "label", label)

    assert [record.element_id for record in records] == ["h1", "h2"]
    assert model.get_feature("h1", "label") is None
    assert model.parent_of("lbl") == "h2"
    assert model.ownership_count(label) == 1
    model.check_integrity()


def test_remove_element_cascades_deepest_first():
    model, received = make_model()
    lane = shape(element_id="lane", container=True)
    append_child(lane, shape(element_id="inner", position=Position(1, 2), size=Size(3, 4)))
    model.add_element("root", lane)
    inner_position = model.get_feature("inner", "position")
    received.clear()

    records = model.remove_element("lane")

    assert [(record.element_id, record.feature) for record in records] == [
        ("inner", "position"),
        ("inner", "size"),
        ("lane", "children"),
        ("root", "children"),
    ]
    assert all(record.new_value in (None, (), ("a", "b")) for record in records)
    assert "lane" not in model and "inner" not in model
    assert inner_position.container is None
    assert received == records
    model.check_integrity()


def test_root_cannot_be_removed():
    model, _ = make_model()

    with pytest.raises(InvariantViolation):
        model.remove_element("root")


def test_capture_and_restore_subtree_is_exact():
    model, _ = make_model()
    lane = shape(element_id="lane", container=True, position=Position(9, 9))
    append_child(lane, shape(element_id="inner", position=Position(1, 2)))
    model.add_element("root", lane, index=1)
    before = model.to_payload()

    capture = model.capture_subtree("lane")
    model.remove_element("lane")
    model.restore_subtree(capture)

    assert model.to_payload() == before
    assert model.get_feature("root", "children") == ("a", "lane", "b")
    model.check_integrity()


def test_mutation_during_delivery_is_rejected():
    model, _ = make_model()

    def reentrant(record):
        model.set_feature("b", "name", "nested")

    model.notifier.subscribe(reentrant)

    with pytest.raises(InvariantViolation):
        model.set_feature("a", "name", "outer")

    assert model.get_feature("b", "name") is None


def test_snapshot_round_trip_rebuilds_an_equal_model():
    model, _ = make_model()
    model.set_feature("a", "semantic_element", "urn:task:1")

    rebuilt = NotationModel.from_snapshot(model.snapshot())

    assert rebuilt.to_payload() == model.to_payload()
    assert rebuilt.get_element("a") is not model.get_element("a")


def test_value_owned_outside_the_model_is_rejected():
    model, _ = make_model()
    foreign = shape(element_id="foreign", position=Position(7, 7))
    position = foreign.features["position"]

    with pytest.raises(InvariantViolation):
        model.set_feature("a", "position", position)
