"""Persistence collaborators for model snapshots."""
from __future__ import annotations

import datetime as _dt
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol

import networkx as nx
from networkx.readwrite import json_graph
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from notationlab.errors import PersistenceError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class PersistenceCollaborator(Protocol):
    """Protocol for stores that persist model snapshots.

    ``save`` must be atomic from the caller's view and raise
    :class:`PersistenceError` when the write is rejected.
    """

    def save(self, snapshot: nx.DiGraph) -> None:  # pragma: no cover - interface
        ...

    def load(self) -> Optional[nx.DiGraph]:  # pragma: no cover - interface
        ...


@dataclass
class MemoryStore:
    """Keep saved snapshots in memory; ``load`` returns the latest one."""

    history: List[nx.DiGraph] = field(default_factory=list)

    def save(self, snapshot: nx.DiGraph) -> None:
        self.history.append(snapshot)

    def load(self) -> Optional[nx.DiGraph]:
        if not self.history:
            return None
        return self.history[-1]


@dataclass
class JsonFileStore:
    """Store snapshots as node-link JSON documents on disk.

    Writes go to a temporary file in the target directory which then
    replaces the document, so a failed write never leaves a partial file
    behind.  Transient ``OSError`` failures are retried.
    """

    path: Path
    retries: int = 3
    retry_wait: float = 0.1

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        if self.retries < 1:
            raise ValueError("retries must be at least 1")

    def save(self, snapshot: nx.DiGraph) -> None:
        document = {
            "format": FORMAT_VERSION,
            "saved_at": _dt.datetime.now(_dt.timezone.utc).isoformat(),
            "graph": json_graph.node_link_data(snapshot, edges="edges"),
        }
        try:
            text = json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Snapshot is not serialisable: {exc}") from exc

        retrying = Retrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_exponential(multiplier=self.retry_wait, max=2),
            retry=retry_if_exception_type(OSError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            retrying(self._write_atomic, text)
        except OSError as exc:
            raise PersistenceError(f"Could not write {self.path}: {exc}") from exc
        logger.info("Saved model snapshot to %s", self.path)

    def load(self) -> Optional[nx.DiGraph]:
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            if document.get("format") != FORMAT_VERSION:
                raise ValueError(f"Unsupported format version: {document.get('format')!r}")
            graph = json_graph.node_link_graph(
                document["graph"], directed=True, multigraph=False, edges="edges"
            )
        except (OSError, KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Could not read {self.path}: {exc}") from exc
        return nx.freeze(graph)

    def _write_atomic(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        )
        try:
            with handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(handle.name, self.path)
        except BaseException:
            Path(handle.name).unlink(missing_ok=True)
            raise


__all__ = ["FORMAT_VERSION", "JsonFileStore", "MemoryStore", "PersistenceCollaborator"]
