"""Action routing for the editing session."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Protocol, Tuple, Type

from notationlab.actions import Action
from notationlab.errors import InvariantViolation, UnhandledAction

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from notationlab.state import ModelStateManager

logger = logging.getLogger(__name__)


class ActionHandler(Protocol):
    """Protocol implemented by action handlers."""

    def handles(self, action: Action) -> bool:  # pragma: no cover - interface
        ...

    def execute(
        self, action: Action, state: "ModelStateManager"
    ) -> Optional[Action]:  # pragma: no cover - interface
        ...


class BaseActionHandler:
    """Handler accepting every action that is an instance of ``handled_kinds``."""

    handled_kinds: Tuple[Type[Action], ...] = ()

    def handles(self, action: Action) -> bool:
        return isinstance(action, self.handled_kinds)

    def execute(self, action: Action, state: "ModelStateManager") -> Optional[Action]:
        raise NotImplementedError


@dataclass
class ActionDispatcher:
    """Dispatch actions to the first registered handler that accepts them.

    Handlers are scanned in registration order.  With ``unique`` enabled,
    registering a handler whose ``handled_kinds`` overlap those of an earlier
    handler is rejected instead of being shadowed silently.
    """

    handlers: List[ActionHandler] = field(default_factory=list)
    unique: bool = False

    def register(self, handler: ActionHandler, *, unique: Optional[bool] = None) -> None:
        """Append ``handler`` to the registration order."""

        if self.unique if unique is None else unique:
            kinds = set(getattr(handler, "handled_kinds", ()))
            for existing in self.handlers:
                overlap = kinds & set(getattr(existing, "handled_kinds", ()))
                if overlap:
                    names = ", ".join(sorted(kind.kind for kind in overlap))
                    raise ValueError(f"Actions already handled by {existing!r}: {names}")
        self.handlers.append(handler)

    def handler_for(self, action: Action) -> ActionHandler:
        for handler in self.handlers:
            if handler.handles(action):
                return handler
        raise UnhandledAction(f"No handler registered for action '{action.kind}'")

    def dispatch(self, action: Action, state: "ModelStateManager") -> Optional[Action]:
        """Run the matching handler and return its response, if any.

        Unhandled actions are dropped.  A handler failure is logged and turns
        into an empty response, except :class:`InvariantViolation`, which
        signals a corrupted model and propagates.
        """

        try:
            handler = self.handler_for(action)
        except UnhandledAction:
            logger.debug("Dropping unhandled action '%s'", action.kind)
            return None
        try:
            return handler.execute(action, state)
        except InvariantViolation:
            raise
        except Exception:
            logger.exception("Handler %r failed on action '%s'", handler, action.kind)
            return None


__all__ = ["ActionDispatcher", "ActionHandler", "BaseActionHandler"]
