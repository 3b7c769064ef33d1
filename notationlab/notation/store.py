"""In-memory containment graph of notation elements.

The element hierarchy is mirrored in a :class:`networkx.DiGraph` (parent to
child edges, labelled with the containing feature) which is used for subtree
traversal and cycle detection.  Containable values carry a back-reference to
their owner; every mutator keeps both views consistent and emits one ordered
batch of :class:`ChangeRecord` objects after the mutation completed.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple

import networkx as nx

from notationlab.errors import InvariantViolation, UnknownElementError, UnsupportedFeatureError
from notationlab.obs.notifier import ChangeNotifier

from .model import (
    CHILDREN,
    ChangeRecord,
    Containable,
    NotationElement,
    container_element,
    element_to_payload,
    iter_subtree,
)

logger = logging.getLogger(__name__)


def _same_value(current: Any, new: Any) -> bool:
    if current is new:
        return True
    if current is None or new is None or type(current) is not type(new):
        return False
    return current == new


def _child_ids(element: NotationElement) -> Tuple[str, ...]:
    return tuple(child.id for child in element.children)


@dataclass(frozen=True)
class SubtreeCapture:
    """Structure of a subtree recorded right before it is removed."""

    root: NotationElement
    parent_id: str
    feature: str
    index: int
    entries: Tuple[Tuple[NotationElement, dict, Tuple[NotationElement, ...]], ...]


class NotationModel:
    """Observable containment graph rooted at a single container element."""

    def __init__(
        self,
        root: Optional[NotationElement] = None,
        *,
        notifier: Optional[ChangeNotifier] = None,
    ) -> None:
        self.root = root if root is not None else container_element(kind="diagram")
        if not self.root.is_container:
            raise InvariantViolation(f"Root element '{self.root.id}' must be a container")
        if self.root.container is not None:
            raise InvariantViolation(f"Root element '{self.root.id}' is owned by {self.root.container}")
        self.notifier = notifier if notifier is not None else ChangeNotifier()
        self.tree = nx.DiGraph()
        self._index: dict[str, NotationElement] = {}
        self._lock = threading.RLock()
        ids = [node.id for node in iter_subtree(self.root)]
        if len(ids) != len(set(ids)):
            raise InvariantViolation("Element identifiers must be unique within a model")
        self._register(self.root, None, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    def get_element(self, element_id: str) -> NotationElement:
        element = self._index.get(element_id)
        if element is None:
            raise UnknownElementError(f"Element '{element_id}' does not exist")
        return element

    def get_feature(self, element_id: str, feature: str) -> Any:
        """Return the value of ``feature`` or ``None`` when it is not set."""

        with self._lock:
            element = self.get_element(element_id)
            if feature == CHILDREN and element.is_container:
                return _child_ids(element)
            self._check_supported(element, feature)
            return element.features.get(feature)

    def is_set(self, element_id: str, feature: str) -> bool:
        with self._lock:
            element = self.get_element(element_id)
            if feature == CHILDREN and element.is_container:
                return bool(element.children)
            self._check_supported(element, feature)
            return element.features.get(feature) is not None

    def parent_of(self, element_id: str) -> Optional[str]:
        container = self.get_element(element_id).container
        return container[0] if container else None

    def owner_of(self, value: Containable) -> Optional[Tuple[str, str]]:
        """Return the ``(element_id, feature)`` owning ``value`` in this model."""

        container = value.container
        if container is None or container[0] not in self._index:
            return None
        return container

    def ownership_count(self, value: Containable) -> int:
        """Count the places of this model that hold ``value`` (by identity)."""

        with self._lock:
            count = 0
            for element in self._index.values():
                count += sum(1 for _, held in element.contained_values() if held is value)
                count += sum(1 for child in element.children if child is value)
            return count

    def check_integrity(self) -> None:
        """Raise :class:`InvariantViolation` when ownership bookkeeping diverged."""

        with self._lock:
            owners: dict[int, Tuple[str, str]] = {}
            for element in self._index.values():
                held = list(element.contained_values())
                held.extend((CHILDREN, child) for child in element.children)
                for feature, value in held:
                    location = (element.id, feature)
                    if id(value) in owners:
                        raise InvariantViolation(
                            f"{value!r} is owned by both {owners[id(value)]} and {location}"
                        )
                    owners[id(value)] = location
                    if value.container != location:
                        raise InvariantViolation(
                            f"{value!r} held by {location} points back to {value.container}"
                        )
            if set(self.tree.nodes) != set(self._index):
                raise InvariantViolation("Containment graph and element index diverged")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @contextmanager
    def locked(self) -> Iterator["NotationModel"]:
        """Hold the exclusive mutation lock for the duration of the block."""

        with self._lock:
            yield self

    def set_feature(
        self, element_id: str, feature: str, new_value: Any, *, touch: bool = True
    ) -> List[ChangeRecord]:
        """Assign ``new_value`` to ``feature`` of ``element_id``.

        A containable value owned elsewhere is detached from its previous
        owner first; the detach record precedes the record of the new owner.
        Setting a value equal to the current one changes nothing and emits a
        single touch record (suppressed with ``touch=False``).
        """

        with self._mutating():
            element = self.get_element(element_id)
            self._check_settable(element, feature)
            current = element.features.get(feature)
            if _same_value(current, new_value):
                records = [ChangeRecord(element_id, feature, current, current)] if touch else []
            else:
                if isinstance(new_value, Containable):
                    self._check_attachable(new_value, element)
                records = []
                if isinstance(new_value, Containable) and new_value.container is not None:
                    records.append(self._detach(new_value))
                if isinstance(current, Containable):
                    self._release(current)
                if new_value is None:
                    element.features.pop(feature, None)
                else:
                    element.features[feature] = new_value
                if isinstance(new_value, Containable):
                    self._attach(new_value, element, feature)
                records.append(ChangeRecord(element_id, feature, current, new_value))
        self.notifier.publish(records)
        return records

    def unset_feature(self, element_id: str, feature: str) -> List[ChangeRecord]:
        return self.set_feature(element_id, feature, None, touch=False)

    def add_element(
        self, parent_id: str, element: NotationElement, index: Optional[int] = None
    ) -> List[ChangeRecord]:
        """Insert ``element`` (and its subtree) among the children of ``parent_id``."""

        with self._mutating():
            parent = self.get_element(parent_id)
            if not parent.is_container:
                raise UnsupportedFeatureError(f"Element '{parent_id}' is not a container")
            self._check_attachable(element, parent)
            records = []
            if element.container is not None:
                records.append(self._detach(element))
            old = _child_ids(parent)
            slot = len(parent.children) if index is None else max(0, min(index, len(parent.children)))
            parent.children.insert(slot, element)
            self._attach(element, parent, CHILDREN)
            records.append(ChangeRecord(parent_id, CHILDREN, old, _child_ids(parent)))
        self.notifier.publish(records)
        return records

    def remove_element(self, element_id: str) -> List[ChangeRecord]:
        """Remove ``element_id`` and cascade the detach through its subtree."""

        with self._mutating():
            element = self.get_element(element_id)
            if element is self.root:
                raise InvariantViolation("The root element cannot be removed")
            records = self._cascade(element)
            records.append(self._detach(element))
        self.notifier.publish(records)
        return records

    def capture_subtree(self, element_id: str) -> SubtreeCapture:
        with self._lock:
            element = self.get_element(element_id)
            if element.container is None:
                raise InvariantViolation("The root element cannot be captured")
            parent_id, feature = element.container
            parent = self._index[parent_id]
            index = parent.children.index(element) if feature == CHILDREN else -1
            entries = tuple(
                (node, dict(node.features), tuple(node.children)) for node in iter_subtree(element)
            )
            return SubtreeCapture(element, parent_id, feature, index, entries)

    def restore_subtree(self, capture: SubtreeCapture) -> List[ChangeRecord]:
        """Re-attach a subtree previously removed after :meth:`capture_subtree`."""

        with self._mutating():
            parent = self.get_element(capture.parent_id)
            root = capture.root
            if root.container is not None:
                raise InvariantViolation(f"Element '{root.id}' is already attached")
            if capture.feature != CHILDREN and parent.features.get(capture.feature) is not None:
                raise InvariantViolation(f"{parent.id}.{capture.feature} is already set")
            clashes = {node.id for node, _, _ in capture.entries} & self._index.keys()
            if clashes:
                raise InvariantViolation(f"Element identifiers already in use: {sorted(clashes)}")
            for node, features, _ in capture.entries:
                for key, value in features.items():
                    if isinstance(value, Containable) and value.container not in (None, (node.id, key)):
                        raise InvariantViolation(f"{value!r} was claimed by {value.container}")

            records: List[ChangeRecord] = []
            for node, features, children in capture.entries:
                for key, value in sorted(features.items()):
                    node.features[key] = value
                    if isinstance(value, Containable):
                        value._set_container((node.id, key))
                        records.append(ChangeRecord(node.id, key, None, value))
                if children:
                    node.children[:] = list(children)
                    for child in children:
                        child._set_container((node.id, CHILDREN))
                    records.append(ChangeRecord(node.id, CHILDREN, (), _child_ids(node)))

            if capture.feature == CHILDREN:
                old = _child_ids(parent)
                parent.children.insert(min(capture.index, len(parent.children)), root)
                self._attach(root, parent, CHILDREN)
                records.append(ChangeRecord(parent.id, CHILDREN, old, _child_ids(parent)))
            else:
                parent.features[capture.feature] = root
                self._attach(root, parent, capture.feature)
                records.append(ChangeRecord(parent.id, capture.feature, None, root))
        self.notifier.publish(records)
        return records

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def to_payload(self) -> dict[str, Any]:
        """Nested plain-data form of the whole model, for structural comparison."""

        with self._lock:
            return element_to_payload(self.root)

    def snapshot(self) -> nx.DiGraph:
        """Return an immutable point-in-time graph of the model."""

        from notationlab.persist.snapshot import build_snapshot

        with self._lock:
            return build_snapshot(self.root)

    @classmethod
    def from_snapshot(
        cls, graph: nx.DiGraph, *, notifier: Optional[ChangeNotifier] = None
    ) -> "NotationModel":
        from notationlab.persist.snapshot import restore_root

        return cls(restore_root(graph), notifier=notifier)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _mutating(self) -> Iterator[None]:
        if self.notifier.delivering:
            raise InvariantViolation(
                "The model cannot be mutated while change records are being delivered"
            )
        with self._lock:
            yield

    @staticmethod
    def _check_supported(element: NotationElement, feature: str) -> None:
        if not element.supports(feature):
            raise UnsupportedFeatureError(
                f"Element '{element.id}' of kind '{element.kind}' has no feature '{feature}'"
            )

    def _check_settable(self, element: NotationElement, feature: str) -> None:
        if feature == CHILDREN:
            raise UnsupportedFeatureError(
                "'children' is changed through add_element/remove_element"
            )
        self._check_supported(element, feature)

    def _check_attachable(self, value: Containable, owner: NotationElement) -> None:
        container = value.container
        if container is not None and container[0] not in self._index:
            raise InvariantViolation(f"{value!r} is owned by '{container[0]}' outside this model")
        if not isinstance(value, NotationElement):
            return
        if value is self.root:
            raise InvariantViolation("The root element cannot be contained")
        subtree_ids = {node.id for node in iter_subtree(value)}
        if owner.id in subtree_ids:
            raise InvariantViolation(f"Containing '{value.id}' in '{owner.id}' would create a cycle")
        if container is None:
            clashes = subtree_ids & self._index.keys()
            if clashes:
                raise InvariantViolation(f"Element identifiers already in use: {sorted(clashes)}")
        elif self._index.get(value.id) is not value:
            raise InvariantViolation(f"Element '{value.id}' is not the indexed instance")

    def _detach(self, value: Containable) -> ChangeRecord:
        owner_id, feature = value.container
        owner = self._index[owner_id]
        if feature == CHILDREN:
            old = _child_ids(owner)
            owner.children.remove(value)
            record = ChangeRecord(owner_id, CHILDREN, old, _child_ids(owner))
        else:
            del owner.features[feature]
            record = ChangeRecord(owner_id, feature, value, None)
        self._release(value)
        return record

    def _release(self, value: Containable) -> None:
        value._set_container(None)
        if isinstance(value, NotationElement) and value.id in self._index:
            self._unregister(value)

    def _attach(self, value: Containable, owner: NotationElement, feature: str) -> None:
        value._set_container((owner.id, feature))
        if isinstance(value, NotationElement):
            self._register(value, owner.id, feature)

    def _cascade(self, element: NotationElement) -> List[ChangeRecord]:
        records: List[ChangeRecord] = []
        for node_id in list(nx.dfs_postorder_nodes(self.tree, element.id)):
            node = self._index[node_id]
            for key, value in sorted(list(node.contained_values()), key=lambda item: item[0]):
                del node.features[key]
                value._set_container(None)
                records.append(ChangeRecord(node.id, key, value, None))
            if node.children:
                old = _child_ids(node)
                for child in node.children:
                    child._set_container(None)
                node.children.clear()
                records.append(ChangeRecord(node.id, CHILDREN, old, ()))
        return records

    def _register(
        self, element: NotationElement, parent_id: Optional[str], feature: Optional[str]
    ) -> None:
        self._index[element.id] = element
        self.tree.add_node(element.id, kind=element.kind)
        if parent_id is not None:
            self.tree.add_edge(parent_id, element.id, feature=feature)
        for key, value in element.contained_values():
            if isinstance(value, NotationElement):
                self._register(value, element.id, key)
        for child in element.children:
            self._register(child, element.id, CHILDREN)

    def _unregister(self, element: NotationElement) -> None:
        doomed = [element.id, *nx.descendants(self.tree, element.id)]
        self.tree.remove_nodes_from(doomed)
        for node_id in doomed:
            self._index.pop(node_id, None)
        logger.debug("Unregistered %d element(s) under '%s'", len(doomed), element.id)


__all__ = ["NotationModel", "SubtreeCapture"]
