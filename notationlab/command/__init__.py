"""Command subpackage: reversible commands and the undo/redo history."""

from .commands import (
    AddElementCommand,
    Command,
    CompoundCommand,
    RemoveElementCommand,
    SetFeatureCommand,
)
from .stack import CommandStack

__all__ = [
    "AddElementCommand",
    "Command",
    "CommandStack",
    "CompoundCommand",
    "RemoveElementCommand",
    "SetFeatureCommand",
]
