"""Reversible commands over the notation model."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from notationlab.errors import InvariantViolation
from notationlab.notation.model import CHILDREN, ChangeRecord, Containable, NotationElement
from notationlab.notation.store import NotationModel, SubtreeCapture


class Command(Protocol):
    """A self-contained, reversible unit of model mutation."""

    label: str

    def apply(self) -> List[ChangeRecord]:  # pragma: no cover - interface
        ...

    def invert(self) -> List[ChangeRecord]:  # pragma: no cover - interface
        ...


@dataclass
class SetFeatureCommand:
    """Assign one feature; undo restores the old value and the old owner."""

    model: NotationModel
    element_id: str
    feature: str
    value: Any
    label: str = "Set feature"
    _previous: Any = field(default=None, init=False, repr=False)
    _previous_owner: Optional[Tuple[str, str, int]] = field(default=None, init=False, repr=False)

    def apply(self) -> List[ChangeRecord]:
        previous = self.model.get_feature(self.element_id, self.feature)
        owner = None
        if isinstance(self.value, Containable) and self.value is not previous:
            location = self.model.owner_of(self.value)
            if location is not None:
                owner_id, owner_feature = location
                index = -1
                if owner_feature == CHILDREN:
                    index = self.model.get_feature(owner_id, CHILDREN).index(self.value.id)
                owner = (owner_id, owner_feature, index)
        records = self.model.set_feature(self.element_id, self.feature, self.value)
        self._previous = previous
        self._previous_owner = owner
        return records

    def invert(self) -> List[ChangeRecord]:
        records = self.model.set_feature(self.element_id, self.feature, self._previous)
        if self._previous_owner is not None:
            owner_id, owner_feature, index = self._previous_owner
            if owner_feature == CHILDREN:
                records.extend(self.model.add_element(owner_id, self.value, index))
            else:
                records.extend(self.model.set_feature(owner_id, owner_feature, self.value))
        return records


@dataclass
class AddElementCommand:
    """Insert a new element; redo re-attaches the exact removed subtree."""

    model: NotationModel
    parent_id: str
    element: NotationElement
    index: Optional[int] = None
    label: str = "Create element"
    _capture: Optional[SubtreeCapture] = field(default=None, init=False, repr=False)

    def apply(self) -> List[ChangeRecord]:
        if self._capture is not None:
            return self.model.restore_subtree(self._capture)
        if self.element.container is not None:
            raise InvariantViolation(f"Element '{self.element.id}' is already attached")
        return self.model.add_element(self.parent_id, self.element, self.index)

    def invert(self) -> List[ChangeRecord]:
        self._capture = self.model.capture_subtree(self.element.id)
        return self.model.remove_element(self.element.id)


@dataclass
class RemoveElementCommand:
    """Remove an element with its subtree; undo restores the captured structure."""

    model: NotationModel
    element_id: str
    label: str = "Delete element"
    _capture: Optional[SubtreeCapture] = field(default=None, init=False, repr=False)

    def apply(self) -> List[ChangeRecord]:
        capture = self.model.capture_subtree(self.element_id)
        records = self.model.remove_element(self.element_id)
        self._capture = capture
        return records

    def invert(self) -> List[ChangeRecord]:
        if self._capture is None:
            raise InvariantViolation("Cannot invert a remove that was never applied")
        return self.model.restore_subtree(self._capture)


@dataclass
class CompoundCommand:
    """Apply several commands as one history entry.

    If a member fails, the members applied so far are inverted before the
    error propagates, leaving the model as it was.
    """

    label: str
    commands: Sequence[Command] = ()

    def apply(self) -> List[ChangeRecord]:
        records: List[ChangeRecord] = []
        applied: List[Command] = []
        try:
            for command in self.commands:
                records.extend(command.apply())
                applied.append(command)
        except Exception:
            for command in reversed(applied):
                command.invert()
            raise
        return records

    def invert(self) -> List[ChangeRecord]:
        records: List[ChangeRecord] = []
        for command in reversed(self.commands):
            records.extend(command.invert())
        return records


__all__ = [
    "AddElementCommand",
    "Command",
    "CompoundCommand",
    "RemoveElementCommand",
    "SetFeatureCommand",
]
