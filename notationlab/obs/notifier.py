"""Synchronous publish/subscribe of model change records."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, List, Sequence

from notationlab.errors import InvariantViolation

if TYPE_CHECKING:  # pragma: no cover - import for type checking only
    from notationlab.notation.model import ChangeRecord

ChangeListener = Callable[["ChangeRecord"], None]

logger = logging.getLogger(__name__)


@dataclass
class ChangeNotifier:
    """Deliver change records to subscribed listeners, in emission order.

    Delivery happens inside the mutating call; there is no queue.  Listeners
    must not mutate the model while a batch is being delivered; follow-up
    edits are scheduled as new actions on the session loop instead.
    """

    listeners: List[ChangeListener] = field(default_factory=list)
    _depth: int = field(default=0, init=False, repr=False)

    def subscribe(self, listener: ChangeListener) -> None:
        """Register ``listener``; subscribing twice has no effect."""

        if listener not in self.listeners:
            self.listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    @property
    def has_listeners(self) -> bool:
        return bool(self.listeners)

    @property
    def delivering(self) -> bool:
        """True while a batch is being handed to listeners."""

        return self._depth > 0

    def publish(self, records: Sequence[ChangeRecord] | Iterable[ChangeRecord]) -> None:
        """Deliver every record of ``records`` to the current listeners.

        The listener list is captured once per batch, so (un)subscribing from
        inside a listener takes effect for the next batch.  A failing
        listener is logged and does not prevent delivery to the others, except
        for :class:`InvariantViolation` (e.g. a re-entrant mutation), which
        propagates.
        """

        batch = tuple(records)
        if not batch:
            return
        listeners = tuple(self.listeners)
        self._depth += 1
        try:
            for record in batch:
                if record.is_touch:
                    logger.debug("Touch on %s.%s", record.element_id, record.feature)
                for listener in listeners:
                    try:
                        listener(record)
                    except InvariantViolation:
                        raise
                    except Exception:
                        logger.exception(
                            "Change listener %r failed on %s.%s",
                            listener,
                            record.element_id,
                            record.feature,
                        )
        finally:
            self._depth -= 1


__all__ = ["ChangeListener", "ChangeNotifier"]
