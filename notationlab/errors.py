"""Exception hierarchy shared by the notationlab subsystems."""
from __future__ import annotations


class NotationError(Exception):
    """Base class for every error raised by :mod:`notationlab`."""


class InvariantViolation(NotationError):
    """A structural invariant of the notation model would be broken.

    These are never expected in correct usage and are not recovered from.
    """


class IllegalStateError(NotationError):
    """An operation was requested in a state that does not allow it."""


class PersistenceError(NotationError):
    """The persistence collaborator could not read or write a snapshot."""


class UnhandledAction(NotationError, KeyError):
    """No registered handler accepts the given action."""


class UnknownElementError(NotationError, KeyError):
    """The referenced element does not exist in the model."""


class UnsupportedFeatureError(NotationError, KeyError):
    """The feature is not part of the element's capability set."""


__all__ = [
    "IllegalStateError",
    "InvariantViolation",
    "NotationError",
    "PersistenceError",
    "UnhandledAction",
    "UnknownElementError",
    "UnsupportedFeatureError",
]
