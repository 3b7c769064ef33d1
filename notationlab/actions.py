"""Actions exchanged between the client and the editing session."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Type

import networkx as nx

from notationlab.notation.model import Position, Size, value_from_payload


@dataclass(frozen=True)
class Action:
    """Base class for all actions; ``kind`` discriminates the payload."""

    kind: ClassVar[str] = "action"


@dataclass(frozen=True)
class UndoAction(Action):
    kind: ClassVar[str] = "undo"


@dataclass(frozen=True)
class RedoAction(Action):
    kind: ClassVar[str] = "redo"


@dataclass(frozen=True)
class SaveAction(Action):
    kind: ClassVar[str] = "saveModel"


@dataclass(frozen=True)
class RequestModelAction(Action):
    kind: ClassVar[str] = "requestModel"


@dataclass(frozen=True)
class ChangeBoundsAction(Action):
    """Move and/or resize one shape."""

    kind: ClassVar[str] = "changeBounds"

    element_id: str
    position: Optional[Position] = None
    size: Optional[Size] = None


@dataclass(frozen=True)
class SetFeatureAction(Action):
    kind: ClassVar[str] = "setFeature"

    element_id: str
    feature: str
    value: Any = None


@dataclass(frozen=True)
class CreateElementAction(Action):
    kind: ClassVar[str] = "createElement"

    parent_id: str
    element_kind: str = "shape"
    element_id: Optional[str] = None
    name: Optional[str] = None
    position: Optional[Position] = None
    size: Optional[Size] = None
    container: bool = False
    index: Optional[int] = None


@dataclass(frozen=True)
class DeleteElementAction(Action):
    kind: ClassVar[str] = "deleteElement"

    element_id: str


@dataclass(frozen=True)
class SaveFailedAction(Action):
    """Scheduled on the session loop when a background save failed."""

    kind: ClassVar[str] = "saveFailed"

    error: str


@dataclass(frozen=True)
class UnknownAction(Action):
    """Inbound payload whose kind is not part of the protocol."""

    kind: ClassVar[str] = "unknown"

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


# -- responses ---------------------------------------------------------------


@dataclass(frozen=True)
class RequestBoundsAction(Action):
    """Ask the client to lay out and display a new render snapshot."""

    kind: ClassVar[str] = "requestBounds"

    root: nx.DiGraph = field(compare=False)


@dataclass(frozen=True)
class ServerStatusAction(Action):
    kind: ClassVar[str] = "serverStatus"

    severity: str
    message: str


INBOUND_ACTIONS: Dict[str, Type[Action]] = {
    action_type.kind: action_type
    for action_type in (
        UndoAction,
        RedoAction,
        SaveAction,
        RequestModelAction,
        ChangeBoundsAction,
        SetFeatureAction,
        CreateElementAction,
        DeleteElementAction,
    )
}


def _position(payload: Any) -> Optional[Position]:
    if payload is None or isinstance(payload, Position):
        return payload
    return Position(float(payload["x"]), float(payload["y"]))


def _size(payload: Any) -> Optional[Size]:
    if payload is None or isinstance(payload, Size):
        return payload
    return Size(float(payload["width"]), float(payload["height"]))


def action_from_payload(payload: Mapping[str, Any]) -> Action:
    """Build an action from a ``{"kind": ..., **params}`` mapping.

    Unknown kinds produce an :class:`UnknownAction` which no handler accepts.
    Missing required parameters raise :class:`KeyError`.
    """

    kind = payload.get("kind")
    if not kind:
        raise KeyError("payload must include 'kind'")
    params = {key: value for key, value in payload.items() if key != "kind"}
    action_type = INBOUND_ACTIONS.get(kind)
    if action_type is None:
        return UnknownAction(name=str(kind), params=params)
    if "position" in params:
        params["position"] = _position(params["position"])
    if "size" in params:
        params["size"] = _size(params["size"])
    if action_type is SetFeatureAction:
        params["value"] = value_from_payload(params.get("value"))
    try:
        return action_type(**params)
    except TypeError as exc:
        raise KeyError(f"Invalid parameters for action '{kind}': {exc}") from exc


__all__ = [
    "Action",
    "ChangeBoundsAction",
    "CreateElementAction",
    "DeleteElementAction",
    "INBOUND_ACTIONS",
    "RedoAction",
    "RequestBoundsAction",
    "RequestModelAction",
    "SaveAction",
    "SaveFailedAction",
    "ServerStatusAction",
    "SetFeatureAction",
    "UndoAction",
    "UnknownAction",
    "action_from_payload",
]
