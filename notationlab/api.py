"""Public API surface for notationlab."""
from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import wait
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional

from notationlab.actions import Action, action_from_payload
from notationlab.config import EditorSettings
from notationlab.handlers import default_handlers
from notationlab.persist.store import JsonFileStore, MemoryStore, PersistenceCollaborator
from notationlab.router import ActionDispatcher
from notationlab.state import ModelStateManager

logger = logging.getLogger(__name__)

ResponseSink = Callable[[Action], None]


@dataclass
class EditorSession:
    """One editing session: an inbound queue drained by a single loop.

    Actions are handled one at a time to completion.  :meth:`submit` may be
    called from any thread (save failures are reported through it from the
    writer thread); everything else runs on the thread driving the loop.
    Responses go to ``sink`` when given, otherwise they are collected in
    ``responses``.
    """

    state: ModelStateManager = field(default_factory=ModelStateManager)
    dispatcher: ActionDispatcher = field(default_factory=ActionDispatcher)
    sink: Optional[ResponseSink] = None
    responses: List[Action] = field(default_factory=list)
    settings: EditorSettings = field(default_factory=EditorSettings)
    register_defaults: bool = True
    _inbox: "queue.Queue[Action]" = field(default_factory=queue.Queue, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.register_defaults:
            for handler in default_handlers(self.submit):
                self.dispatcher.register(handler)

    @classmethod
    def open(
        cls,
        settings: Optional[EditorSettings] = None,
        *,
        persistence: Optional[PersistenceCollaborator] = None,
        sink: Optional[ResponseSink] = None,
    ) -> "EditorSession":
        """Create a session, loading the stored model when there is one."""

        settings = settings or EditorSettings.from_env()
        if persistence is None:
            if settings.model_path is not None:
                persistence = JsonFileStore(settings.model_path, retries=settings.save_retries)
            else:
                persistence = MemoryStore()
        session = cls(
            state=ModelStateManager(persistence=persistence),
            dispatcher=ActionDispatcher(unique=settings.unique_handlers),
            sink=sink,
            settings=settings,
        )
        if not session.state.load():
            logger.info("No stored model found; starting with an empty diagram")
        return session

    # -- loop ---------------------------------------------------------------

    def submit(self, action: Action) -> None:
        """Schedule ``action`` on the session loop; safe from any thread."""

        self._inbox.put(action)

    def submit_payload(self, payload: Mapping[str, Any]) -> None:
        self.submit(action_from_payload(payload))

    def handle(self, action: Action) -> Optional[Action]:
        """Dispatch ``action`` now and deliver its response, if any."""

        response = self.dispatcher.dispatch(action, self.state)
        if response is not None:
            if self.sink is not None:
                self.sink(response)
            else:
                self.responses.append(response)
        return response

    def handle_payload(self, payload: Mapping[str, Any]) -> Optional[Action]:
        return self.handle(action_from_payload(payload))

    def process_pending(self) -> int:
        """Handle every queued action; return how many were handled."""

        handled = 0
        while True:
            try:
                action = self._inbox.get_nowait()
            except queue.Empty:
                return handled
            try:
                self.handle(action)
            finally:
                self._inbox.task_done()
            handled += 1

    def run_until_idle(self, timeout: Optional[float] = None) -> int:
        """Drain the queue, waiting for the pending save so its outcome is handled too.

        The wait is bounded by ``timeout`` (default: the configured save timeout).
        """

        handled = self.process_pending()
        pending = self.state.pending_save
        if pending is not None:
            limit = self.settings.save_timeout if timeout is None else timeout
            done, _ = wait([pending], timeout=limit)
            if not done:
                logger.warning("Save still running after %.1fs", limit)
            handled += self.process_pending()
        return handled

    def serve(self, stop: threading.Event, poll_interval: float = 0.1) -> None:
        """Run the loop on the calling thread until ``stop`` is set."""

        logger.info("Editor session loop started")
        while not stop.is_set():
            try:
                action = self._inbox.get(timeout=poll_interval)
            except queue.Empty:
                continue
            try:
                self.handle(action)
            finally:
                self._inbox.task_done()
        logger.info("Editor session loop stopped")

    def close(self) -> None:
        self.state.close()

    def __enter__(self) -> "EditorSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["EditorSession", "ResponseSink"]
