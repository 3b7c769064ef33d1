"""Notation subpackage: element data structures and the containment model."""

from .model import (
    ChangeKind,
    ChangeRecord,
    Containable,
    NotationElement,
    Position,
    Size,
    container_element,
    make_element,
    shape,
)
from .store import NotationModel, SubtreeCapture

__all__ = [
    "ChangeKind",
    "ChangeRecord",
    "Containable",
    "NotationElement",
    "NotationModel",
    "Position",
    "Size",
    "SubtreeCapture",
    "container_element",
    "make_element",
    "shape",
]
