"""Tests for persistence helpers."""

from __future__ import annotations

import json

import networkx as nx
import pytest

from notationlab.errors import PersistenceError
from notationlab.notation.model import (
    Position,
    Size,
    append_child,
    container_element,
    make_element,
    shape,
)
from notationlab.notation.store import NotationModel
from notationlab.persist.snapshot import build_snapshot, restore_root
from notationlab.persist.store import FORMAT_VERSION, JsonFileStore, MemoryStore
from notationlab.render import create_render_snapshot


def make_model() -> NotationModel:
    root = container_element(element_id="root", kind="diagram", name="Process")
    lane = shape(element_id="lane", container=True, position=Position(0, 0), size=Size(100, 50))
    append_child(lane, shape(element_id="task", position=Position(5, 5), size=Size(20, 10), name="Task"))
    append_child(root, lane)
    host = make_element("host", element_id="host", capabilities={"label"})
    append_child(root, host)
    model = NotationModel(root)
    model.set_feature("host", "label", make_element("label", element_id="lbl"))
    model.set_feature("task", "semantic_element", "urn:task:1")
    return model


def test_snapshot_is_frozen_plain_data():
    model = make_model()

    snapshot = model.snapshot()

    assert nx.is_frozen(snapshot)
    assert snapshot.graph["root"] == "root"
    assert snapshot.nodes["task"]["features"]["position"] == {"$type": "position", "x": 5, "y": 5}
    assert snapshot.nodes["host"]["features"]["label"] == {"$ref": "lbl"}
    assert snapshot.edges["lane", "task"] == {"feature": "children", "index": 0}
    assert snapshot.edges["host", "lbl"]["feature"] == "label"


def test_snapshot_is_isolated_from_later_edits():
    model = make_model()
    snapshot = model.snapshot()

    model.set_feature("task", "position", Position(50, 50))

    assert snapshot.nodes["task"]["features"]["position"]["x"] == 5


def test_restore_root_rebuilds_structure():
    model = make_model()

    root = restore_root(build_snapshot(model.root))

    assert NotationModel(root).to_payload() == model.to_payload()


def test_restore_root_rejects_a_forest():
    graph = nx.DiGraph()
    graph.add_node("a", kind="diagram", capabilities=["children"], features={})
    graph.add_node("b", kind="diagram", capabilities=["children"], features={})

    with pytest.raises(ValueError):
        restore_root(graph)


def test_memory_store_returns_latest_snapshot():
    store = MemoryStore()
    assert store.load() is None

    first = make_model().snapshot()
    second = NotationModel().snapshot()
    store.save(first)
    store.save(second)

    assert store.load() is second
    assert store.history == [first, second]


def test_json_file_store_round_trip(tmp_path):
    model = make_model()
    store = JsonFileStore(tmp_path / "models" / "diagram.json")

    store.save(model.snapshot())

    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["format"] == FORMAT_VERSION
    loaded = store.load()
    assert nx.is_frozen(loaded)
    assert NotationModel.from_snapshot(loaded).to_payload() == model.to_payload()
    assert list(store.path.parent.iterdir()) == [store.path]


def test_json_file_store_load_missing_file_returns_none(tmp_path):
    assert JsonFileStore(tmp_path / "absent.json").load() is None


def test_json_file_store_rejects_unknown_format(tmp_path):
    path = tmp_path / "diagram.json"
    path.write_text(json.dumps({"format": 99, "graph": {}}), encoding="utf-8")

    with pytest.raises(PersistenceError):
        JsonFileStore(path).load()


def test_json_file_store_wraps_write_failures(tmp_path, monkeypatch):
    store = JsonFileStore(tmp_path / "diagram.json", retries=2, retry_wait=0)
    calls: list = []

    def failing_replace(src, dst):
        calls.append(src)
        raise PermissionError("read-only volume")

    monkeypatch.setattr("notationlab.persist.store.os.replace", failing_replace)

    with pytest.raises(PersistenceError):
        store.save(make_model().snapshot())

    assert len(calls) == 2
    assert not store.path.exists()
    assert list(tmp_path.iterdir()) == []


def test_json_file_store_keeps_previous_document_on_failure(tmp_path, monkeypatch):
    store = JsonFileStore(tmp_path / "diagram.json", retries=1)
    store.save(NotationModel(container_element(element_id="root", kind="diagram")).snapshot())
    original = store.path.read_text(encoding="utf-8")

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("notationlab.persist.store.os.replace", failing_replace)

    with pytest.raises(PersistenceError):
        store.save(make_model().snapshot())
    assert store.path.read_text(encoding="utf-8") == original


def test_json_file_store_requires_a_positive_retry_count(tmp_path):
    with pytest.raises(ValueError):
        JsonFileStore(tmp_path / "diagram.json", retries=0)


def test_render_snapshot_describes_shapes():
    model = make_model()

    rendered = create_render_snapshot(model.root)

    assert nx.is_frozen(rendered)
    assert rendered.nodes["task"]["type"] == "shape"
    assert rendered.nodes["task"]["label"] == "Task"
    assert rendered.nodes["task"]["bounds"] == {"x": 5, "y": 5, "width": 20, "height": 10}
    assert rendered.nodes["task"]["semantic_element"] == "urn:task:1"
    assert "bounds" not in rendered.nodes["root"]
    assert rendered.edges["root", "host"]["order"] == 1


def test_render_snapshot_does_not_alias_model_values():
    model = make_model()
    model.add_element("root", make_element("note", element_id="note"))
    model.set_feature("host", "semantic_element", make_element("concept", element_id="concept"))
    model.set_feature("note", "semantic_element", Position(1, 2))

    rendered = create_render_snapshot(model.root)

    assert rendered.nodes["host"]["semantic_element"] == "concept"
    assert rendered.nodes["note"]["semantic_element"] == {"$type": "position", "x": 1, "y": 2}
    assert rendered.nodes["concept"]["type"] == "concept"
