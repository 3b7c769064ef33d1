"""Session model state: current model, history and dirty tracking."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

import networkx as nx

from notationlab.command.commands import Command
from notationlab.command.stack import CommandStack
from notationlab.errors import IllegalStateError, PersistenceError
from notationlab.notation.model import ChangeRecord, NotationElement
from notationlab.notation.store import NotationModel
from notationlab.persist.store import MemoryStore, PersistenceCollaborator
from notationlab.render import RenderSnapshotFactory, create_render_snapshot

logger = logging.getLogger(__name__)

SaveFailureCallback = Callable[[PersistenceError], None]

UNREACHABLE = -1


@dataclass(frozen=True)
class ModelState:
    """Read-only view of the session state at one instant."""

    root: NotationElement
    command_stack: CommandStack
    position: int
    saved_position: int

    @property
    def dirty(self) -> bool:
        return self.position != self.saved_position


class ModelStateManager:
    """Own the session's model, its command stack and the saved position.

    Mutations, undo and redo run on the session loop.  :meth:`save` is the
    only operation with work outside that loop: the snapshot is taken under
    the model lock, the write runs on a single background worker so that
    writes complete in submission order.
    """

    def __init__(
        self,
        model: Optional[NotationModel] = None,
        *,
        persistence: Optional[PersistenceCollaborator] = None,
        renderer: Optional[RenderSnapshotFactory] = None,
    ) -> None:
        self.model = model if model is not None else NotationModel()
        self.command_stack = CommandStack()
        self.persistence = persistence if persistence is not None else MemoryStore()
        self.renderer = renderer or create_render_snapshot
        self.pending_save: Optional[Future] = None
        self._saved_position = 0
        self._status_lock = threading.RLock()
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="notationlab-save")

    # -- status -----------------------------------------------------------

    @property
    def saved_position(self) -> int:
        with self._status_lock:
            return self._saved_position

    def dirty(self) -> bool:
        with self._status_lock:
            return self.command_stack.position != self._saved_position

    def can_undo(self) -> bool:
        return self.command_stack.can_undo()

    def can_redo(self) -> bool:
        return self.command_stack.can_redo()

    @property
    def state(self) -> ModelState:
        with self._status_lock:
            return ModelState(
                root=self.model.root,
                command_stack=self.command_stack,
                position=self.command_stack.position,
                saved_position=self._saved_position,
            )

    # -- history ----------------------------------------------------------

    def execute(self, command: Command) -> List[ChangeRecord]:
        """Execute ``command`` on the history.

        Executing below the saved position discards the saved state from the
        history, so the session can no longer become clean through undo/redo.
        """

        with self._status_lock:
            discards_saved = self.command_stack.position < self._saved_position
            records = self.command_stack.execute(command)
            if discards_saved:
                self._saved_position = UNREACHABLE
            return records

    def undo(self) -> bool:
        with self._status_lock:
            try:
                self.command_stack.undo()
            except IllegalStateError as exc:
                logger.info("Undo ignored: %s", exc)
                return False
            return True

    def redo(self) -> bool:
        with self._status_lock:
            try:
                self.command_stack.redo()
            except IllegalStateError as exc:
                logger.info("Redo ignored: %s", exc)
                return False
            return True

    # -- persistence --------------------------------------------------------

    def save(self, *, on_failure: Optional[SaveFailureCallback] = None) -> Future:
        """Snapshot the model and write it in the background.

        The returned future resolves to the history position that was saved
        or raises :class:`PersistenceError`.  ``on_failure`` runs on the
        writer before the future completes.
        """

        # Lock order is status then model, as in execute/undo/redo.
        with self._status_lock, self.model.locked():
            snapshot = self.model.snapshot()
            position = self.command_stack.position
            anchor = self.command_stack.command_at(position - 1) if position else None
        future = self._writer.submit(self._write, snapshot, position, anchor, on_failure)
        self.pending_save = future
        return future

    def save_and_wait(self, timeout: Optional[float] = None) -> int:
        """Save and block until the write finished; re-raises failures."""

        return self.save().result(timeout)

    def load(self) -> bool:
        """Replace the model with the stored one; False when nothing is stored."""

        graph = self.persistence.load()
        if graph is None:
            return False
        try:
            model = NotationModel.from_snapshot(graph, notifier=self.model.notifier)
        except (KeyError, ValueError) as exc:
            raise PersistenceError(f"Stored model is invalid: {exc}") from exc
        self.replace_model(model)
        logger.info("Loaded model with %d element(s)", len(model))
        return True

    def replace_model(self, model: NotationModel) -> None:
        """Swap in ``model``; the history is discarded and the state is clean."""

        with self._status_lock:
            self.model = model
            self.command_stack.clear()
            self._saved_position = 0

    def render(self) -> nx.DiGraph:
        with self.model.locked():
            return self.renderer(self.model.root)

    def close(self, wait: bool = True) -> None:
        self._writer.shutdown(wait=wait)

    def __enter__(self) -> "ModelStateManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- internal helpers ---------------------------------------------------

    def _write(
        self,
        snapshot: nx.DiGraph,
        position: int,
        anchor: Optional[Command],
        on_failure: Optional[SaveFailureCallback],
    ) -> int:
        try:
            self.persistence.save(snapshot)
        except Exception as exc:
            error = exc if isinstance(exc, PersistenceError) else PersistenceError(str(exc))
            logger.error("Saving the model at position %d failed: %s", position, error)
            if on_failure is not None:
                on_failure(error)
            if error is exc:
                raise
            raise error from exc

        with self._status_lock:
            if self._history_contains(position, anchor):
                self._saved_position = position
            else:
                logger.warning(
                    "History changed while saving position %d; the session stays dirty", position
                )
        return position

    def _history_contains(self, position: int, anchor: Optional[Command]) -> bool:
        if position == 0:
            return True
        if position > len(self.command_stack):
            return False
        return self.command_stack.command_at(position - 1) is anchor


__all__ = ["ModelState", "ModelStateManager", "UNREACHABLE"]
