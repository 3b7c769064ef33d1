"""Action handlers shipped with the editing session."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Callable, List, Optional

from notationlab.actions import (
    Action,
    ChangeBoundsAction,
    CreateElementAction,
    DeleteElementAction,
    RedoAction,
    RequestBoundsAction,
    RequestModelAction,
    SaveAction,
    SaveFailedAction,
    ServerStatusAction,
    SetFeatureAction,
    UndoAction,
)
from notationlab.command.commands import (
    AddElementCommand,
    Command,
    CompoundCommand,
    RemoveElementCommand,
    SetFeatureCommand,
)
from notationlab.errors import PersistenceError, UnknownElementError, UnsupportedFeatureError
from notationlab.notation.model import NotationElement, Position, Size, iter_subtree, shape
from notationlab.router import BaseActionHandler

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from notationlab.router import ActionHandler
    from notationlab.state import ModelStateManager

logger = logging.getLogger(__name__)

ActionScheduler = Callable[[Action], None]


def _copy(value):
    # The model takes ownership of values; the action keeps its own instance.
    if isinstance(value, (Position, Size)):
        return replace(value)
    return value


class UndoRedoHandler(BaseActionHandler):
    """Undo or redo one command and answer with a fresh render snapshot."""

    handled_kinds = (UndoAction, RedoAction)

    def execute(self, action: Action, state: "ModelStateManager") -> Optional[Action]:
        done = state.undo() if isinstance(action, UndoAction) else state.redo()
        if not done:
            logger.warning("Cannot undo or redo")
            return None
        return RequestBoundsAction(state.render())


class SaveModelHandler(BaseActionHandler):
    """Start a background save.

    When the write fails, a :class:`SaveFailedAction` is handed to
    ``on_failure`` (normally the session's ``submit``) so the failure is
    reported from the session loop rather than from the writer thread.
    """

    handled_kinds = (SaveAction,)

    def __init__(self, on_failure: Optional[ActionScheduler] = None) -> None:
        self.on_failure = on_failure

    def execute(self, action: Action, state: "ModelStateManager") -> Optional[Action]:
        callback = None
        if self.on_failure is not None:
            schedule = self.on_failure

            def callback(error: PersistenceError) -> None:
                schedule(SaveFailedAction(str(error)))

        state.save(on_failure=callback)
        return None


class SaveFailedHandler(BaseActionHandler):
    handled_kinds = (SaveFailedAction,)

    def execute(self, action: Action, state: "ModelStateManager") -> Optional[Action]:
        return ServerStatusAction("error", f"Saving the model failed: {action.error}")


class RequestModelHandler(BaseActionHandler):
    handled_kinds = (RequestModelAction,)

    def execute(self, action: Action, state: "ModelStateManager") -> Optional[Action]:
        return RequestBoundsAction(state.render())


class _CommandHandler(BaseActionHandler):
    """Turn an action into a command, execute it and re-render."""

    def build_command(
        self, action: Action, state: "ModelStateManager"
    ) -> Optional[Command]:  # pragma: no cover - interface
        raise NotImplementedError

    def execute(self, action: Action, state: "ModelStateManager") -> Optional[Action]:
        try:
            command = self.build_command(action, state)
            if command is None:
                return None
            state.execute(command)
        except (UnknownElementError, UnsupportedFeatureError) as exc:
            logger.warning("Rejected %s: %s", action.kind, exc)
            return None
        return RequestBoundsAction(state.render())


class ChangeBoundsHandler(_CommandHandler):
    """Move and/or resize a shape as a single history entry."""

    handled_kinds = (ChangeBoundsAction,)

    def build_command(self, action: Action, state: "ModelStateManager") -> Optional[Command]:
        model = state.model
        element = model.get_element(action.element_id)
        if not element.is_shape:
            raise UnsupportedFeatureError(f"Element '{element.id}' is not a shape")
        commands: List[Command] = []
        for feature, value in (("position", action.position), ("size", action.size)):
            if value is None or value == model.get_feature(element.id, feature):
                continue
            commands.append(
                SetFeatureCommand(model, element.id, feature, _copy(value), label=f"Change {feature}")
            )
        if not commands:
            logger.debug("Bounds of '%s' unchanged", element.id)
            return None
        if len(commands) == 1:
            return commands[0]
        return CompoundCommand("Change bounds", commands)


class SetFeatureHandler(_CommandHandler):
    handled_kinds = (SetFeatureAction,)

    def build_command(self, action: Action, state: "ModelStateManager") -> Optional[Command]:
        model = state.model
        current = model.get_feature(action.element_id, action.feature)
        value = _copy(action.value)
        if value == current:
            return None
        if isinstance(value, NotationElement):
            clashes = [node.id for node in iter_subtree(value) if node.id in model]
            if clashes:
                raise UnsupportedFeatureError(f"Element identifiers already in use: {clashes}")
        return SetFeatureCommand(
            model, action.element_id, action.feature, value, label=f"Set {action.feature}"
        )


class CreateElementHandler(_CommandHandler):
    handled_kinds = (CreateElementAction,)

    def build_command(self, action: Action, state: "ModelStateManager") -> Optional[Command]:
        model = state.model
        parent = model.get_element(action.parent_id)
        if not parent.is_container:
            raise UnsupportedFeatureError(f"Element '{parent.id}' cannot contain children")
        if action.element_id is not None and action.element_id in model:
            raise UnsupportedFeatureError(f"Element '{action.element_id}' already exists")
        element = shape(
            element_id=action.element_id,
            kind=action.element_kind,
            position=_copy(action.position) or Position(),
            size=_copy(action.size) or Size(),
            name=action.name,
            container=action.container,
        )
        return AddElementCommand(
            model, parent.id, element, action.index, label=f"Create {action.element_kind}"
        )


class DeleteElementHandler(_CommandHandler):
    handled_kinds = (DeleteElementAction,)

    def build_command(self, action: Action, state: "ModelStateManager") -> Optional[Command]:
        model = state.model
        element = model.get_element(action.element_id)
        if element is model.root:
            raise UnsupportedFeatureError("The diagram root cannot be deleted")
        return RemoveElementCommand(model, element.id, label=f"Delete {element.kind}")


def default_handlers(on_save_failure: Optional[ActionScheduler] = None) -> List["ActionHandler"]:
    """Return the standard handler set in registration order."""

    return [
        UndoRedoHandler(),
        SaveModelHandler(on_save_failure),
        SaveFailedHandler(),
        RequestModelHandler(),
        ChangeBoundsHandler(),
        SetFeatureHandler(),
        CreateElementHandler(),
        DeleteElementHandler(),
    ]


__all__ = [
    "ChangeBoundsHandler",
    "CreateElementHandler",
    "DeleteElementHandler",
    "RequestModelHandler",
    "SaveFailedHandler",
    "SaveModelHandler",
    "SetFeatureHandler",
    "UndoRedoHandler",
    "default_handlers",
]
