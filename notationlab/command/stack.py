"""Linear undo/redo history."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from notationlab.errors import IllegalStateError
from notationlab.notation.model import ChangeRecord

from .commands import Command

logger = logging.getLogger(__name__)


@dataclass
class CommandStack:
    """Executed commands plus a cursor marking how many are applied.

    ``commands[:position]`` are applied, ``commands[position:]`` form the
    redo history.  Executing a new command discards the redo history; undo
    and redo never do.
    """

    commands: List[Command] = field(default_factory=list)
    position: int = 0

    def __len__(self) -> int:
        return len(self.commands)

    def execute(self, command: Command) -> List[ChangeRecord]:
        """Apply ``command`` and append it at the cursor.

        When ``apply`` raises, the history is left untouched.
        """

        records = command.apply()
        discarded = len(self.commands) - self.position
        del self.commands[self.position :]
        self.commands.append(command)
        self.position += 1
        if discarded:
            logger.debug("Discarded %d redo command(s)", discarded)
        return records

    def can_undo(self) -> bool:
        return self.position > 0

    def can_redo(self) -> bool:
        return self.position < len(self.commands)

    def undo(self) -> List[ChangeRecord]:
        if not self.can_undo():
            raise IllegalStateError("Nothing to undo")
        records = self.commands[self.position - 1].invert()
        self.position -= 1
        return records

    def redo(self) -> List[ChangeRecord]:
        if not self.can_redo():
            raise IllegalStateError("Nothing to redo")
        records = self.commands[self.position].apply()
        self.position += 1
        return records

    def command_at(self, index: int) -> Command:
        if not 0 <= index < len(self.commands):
            raise IndexError(f"No command at index {index}")
        return self.commands[index]

    def undo_label(self) -> Optional[str]:
        return self.commands[self.position - 1].label if self.can_undo() else None

    def redo_label(self) -> Optional[str]:
        return self.commands[self.position].label if self.can_redo() else None

    def clear(self) -> None:
        self.commands.clear()
        self.position = 0


__all__ = ["CommandStack"]
