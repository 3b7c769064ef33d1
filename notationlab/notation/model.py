"""Data structures describing notation elements and their changes."""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple

from notationlab.errors import InvariantViolation, UnsupportedFeatureError

BASE_FEATURES: frozenset[str] = frozenset({"name", "semantic_element"})
SHAPE_FEATURES: frozenset[str] = frozenset({"position", "size"})
CONTAINER_FEATURES: frozenset[str] = frozenset({"children"})

CHILDREN = "children"

_PREFIX_CHARS = re.compile(r"[^0-9A-Za-z]+")


def new_id(kind: str) -> str:
    """Return a fresh element identifier such as ``shape_<hex>``."""

    prefix = _PREFIX_CHARS.sub("_", kind).strip("_").lower() or "element"
    return f"{prefix}_{uuid.uuid4().hex}"


class Containable:
    """Mixin for values that are exclusively owned by at most one element.

    The owner back-reference is a ``(element_id, feature)`` pair and is only
    ever written by :class:`~notationlab.notation.store.NotationModel` (or by
    the element factories for freshly built, detached elements).
    """

    _container: Optional[Tuple[str, str]] = None

    @property
    def container(self) -> Optional[Tuple[str, str]]:
        return self._container

    def _set_container(self, container: Optional[Tuple[str, str]]) -> None:
        # ``object.__setattr__`` keeps this working for frozen dataclasses.
        object.__setattr__(self, "_container", container)


@dataclass(frozen=True)
class Position(Containable):
    """Location of a shape in diagram coordinates."""

    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Size(Containable):
    """Extent of a shape in diagram coordinates."""

    width: float = 0.0
    height: float = 0.0


class ChangeKind(str, Enum):
    """Kinds of feature transitions emitted by the model."""

    SET = "SET"


@dataclass(frozen=True)
class ChangeRecord:
    """One feature value transition of one element."""

    element_id: str
    feature: str
    old_value: Any
    new_value: Any
    kind: ChangeKind = ChangeKind.SET

    @property
    def is_touch(self) -> bool:
        """True when the record reports an explicit set of the current value."""

        return self.old_value is self.new_value


@dataclass(eq=False)
class NotationElement(Containable):
    """Graph node of the notation model.

    Element kinds are expressed through ``capabilities`` (the feature keys the
    element accepts) rather than through subclasses: a shape is an element
    that supports ``position`` and ``size``, a container one that supports
    ``children``.
    """

    id: str
    kind: str
    capabilities: frozenset[str] = BASE_FEATURES
    features: dict[str, Any] = field(default_factory=dict)
    children: list["NotationElement"] = field(default_factory=list)

    def supports(self, feature: str) -> bool:
        return feature in self.capabilities

    @property
    def is_container(self) -> bool:
        return CHILDREN in self.capabilities

    @property
    def is_shape(self) -> bool:
        return SHAPE_FEATURES <= self.capabilities

    def contained_values(self) -> Iterable[Tuple[str, Containable]]:
        """Yield ``(feature, value)`` pairs for every contained feature value."""

        for key, value in self.features.items():
            if isinstance(value, Containable):
                yield key, value

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"{self.__class__.__name__}(id={self.id!r}, kind={self.kind!r})"


def make_element(
    kind: str,
    *,
    element_id: str | None = None,
    capabilities: Iterable[str] = (),
    features: Mapping[str, Any] | None = None,
) -> NotationElement:
    """Build a detached element, taking ownership of contained feature values."""

    element = NotationElement(
        id=element_id or new_id(kind),
        kind=kind,
        capabilities=BASE_FEATURES | frozenset(capabilities),
    )
    for key, value in (features or {}).items():
        if value is None:
            continue
        if not element.supports(key) or key == CHILDREN:
            raise UnsupportedFeatureError(f"Element kind '{kind}' does not support feature '{key}'")
        if isinstance(value, Containable):
            if value.container is not None:
                raise InvariantViolation(
                    f"Value for '{key}' is already owned by {value.container}"
                )
            value._set_container((element.id, key))
        element.features[key] = value
    return element


def shape(
    *,
    element_id: str | None = None,
    kind: str = "shape",
    position: Position | None = None,
    size: Size | None = None,
    name: str | None = None,
    container: bool = False,
) -> NotationElement:
    """Build a detached shape element."""

    capabilities = SHAPE_FEATURES | (CONTAINER_FEATURES if container else frozenset())
    return make_element(
        kind,
        element_id=element_id,
        capabilities=capabilities,
        features={"position": position, "size": size, "name": name},
    )


def container_element(
    *, element_id: str | None = None, kind: str = "container", name: str | None = None
) -> NotationElement:
    """Build a detached container (e.g. the diagram root)."""

    return make_element(
        kind,
        element_id=element_id,
        capabilities=CONTAINER_FEATURES,
        features={"name": name},
    )


def append_child(parent: NotationElement, child: NotationElement) -> None:
    """Append a detached ``child`` to a detached ``parent`` container."""

    if not parent.is_container:
        raise UnsupportedFeatureError(f"Element '{parent.id}' is not a container")
    if child.container is not None:
        raise InvariantViolation(f"Element '{child.id}' is already owned by {child.container}")
    child._set_container((parent.id, CHILDREN))
    parent.children.append(child)


def iter_subtree(element: NotationElement) -> Iterator[NotationElement]:
    """Yield ``element`` and every element it transitively contains, pre-order."""

    yield element
    for _, value in sorted(element.contained_values(), key=lambda item: item[0]):
        if isinstance(value, NotationElement):
            yield from iter_subtree(value)
    for child in element.children:
        yield from iter_subtree(child)


# -- plain data conversion --------------------------------------------------


def value_to_payload(value: Any) -> Any:
    """Return a JSON-friendly representation of a feature value."""

    if isinstance(value, Position):
        return {"$type": "position", "x": value.x, "y": value.y}
    if isinstance(value, Size):
        return {"$type": "size", "width": value.width, "height": value.height}
    if isinstance(value, NotationElement):
        return {"$type": "element", **element_to_payload(value)}
    return value


def element_to_payload(element: NotationElement) -> dict[str, Any]:
    """Return the nested structural payload of ``element`` and its subtree."""

    payload = {
        "id": element.id,
        "kind": element.kind,
        "capabilities": sorted(element.capabilities),
        "features": {
            key: value_to_payload(value) for key, value in sorted(element.features.items())
        },
    }
    if element.is_container:
        payload[CHILDREN] = [element_to_payload(child) for child in element.children]
    return payload


def value_from_payload(payload: Any) -> Any:
    """Inverse of :func:`value_to_payload`; returned values are unowned."""

    if not isinstance(payload, Mapping) or "$type" not in payload:
        return payload
    value_type = payload["$type"]
    if value_type == "position":
        return Position(payload["x"], payload["y"])
    if value_type == "size":
        return Size(payload["width"], payload["height"])
    if value_type == "element":
        return element_from_payload(payload)
    raise ValueError(f"Unsupported value type: {value_type}")


def element_from_payload(payload: Mapping[str, Any]) -> NotationElement:
    features = {
        key: value_from_payload(value) for key, value in dict(payload.get("features", {})).items()
    }
    capabilities = frozenset(payload.get("capabilities", ())) - BASE_FEATURES
    element = make_element(
        payload["kind"],
        element_id=payload["id"],
        capabilities=capabilities,
        features=features,
    )
    for child_payload in payload.get(CHILDREN, ()):
        append_child(element, element_from_payload(child_payload))
    return element


__all__ = [
    "BASE_FEATURES",
    "CHILDREN",
    "CONTAINER_FEATURES",
    "ChangeKind",
    "ChangeRecord",
    "Containable",
    "NotationElement",
    "Position",
    "SHAPE_FEATURES",
    "Size",
    "append_child",
    "container_element",
    "element_from_payload",
    "element_to_payload",
    "iter_subtree",
    "make_element",
    "new_id",
    "shape",
    "value_from_payload",
    "value_to_payload",
]
