# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Ledger — append-only event log + materialized summary, per user.

Layout per (category, user):
  {category}/{user}/events.jsonl   one LedgerEvent per line, never rewritten
  {category}/{user}/summary.json   fold of events[1..applied_seq]

Writers only ever append a line, so two devices submitting for the same
user can't erase each other's occurrences. Readers load the summary, fold
in any events past applied_seq, and save the advanced summary back. The
summary is a cache: losing or corrupting it just means a longer replay.

A line's seq is its 1-based position in the log. Only newline-terminated
lines count, so a line still being written is picked up on the next read.
"""

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from core.paths import ReveriePaths, get_paths
from patterns.schemas import (
    LedgerEvent, PersistenceFailure, ReverieModel, load_validated, save_validated,
)
from patterns.stats import utc_now

logger = logging.getLogger("reverie.ledger")

S = TypeVar("S", bound=ReverieModel)


class EventLog:
    """Append-only JSONL log."""

    def __init__(self, path: Path):
        self.path = path

    def append(self, kind: str, data: Dict[str, Any], recorded: Optional[str] = None) -> str:
        """
        Append one event. Returns its event_id.

        The line goes out in a single O_APPEND write so concurrent appenders
        interleave whole lines.
        """
        event_id = uuid.uuid4().hex
        line = json.dumps({
            "event_id": event_id,
            "kind": kind,
            "recorded": recorded or utc_now().isoformat(),
            "data": data,
        }, separators=(",", ":")) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.path), os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                os.write(fd, line.encode("utf-8"))
                os.fsync(fd)
            finally:
                os.close(fd)
        except OSError as e:
            raise PersistenceFailure(f"append {self.path}: {e}") from e
        logger.debug("Appended %s event %s to %s", kind, event_id, self.path)
        return event_id

    def read(self, after_seq: int = 0) -> List[LedgerEvent]:
        """Complete events with seq > after_seq, in log order."""
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(f"read {self.path}: {e}") from e

        # Last element is either "" or a partial line still being written
        lines = raw.split("\n")[:-1]
        events = []
        for seq, line in enumerate(lines, start=1):
            if seq <= after_seq:
                continue
            try:
                event = LedgerEvent.model_validate({**json.loads(line), "seq": seq})
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                # Corrupt lines keep their seq so later positions stay stable
                logger.warning("Skipping corrupt event %d in %s: %s", seq, self.path, e)
                continue
            events.append(event)
        return events


class Ledger(Generic[S]):
    """
    Per-user ledger for one category. Subclasses define the summary schema,
    an empty summary, and how one event folds into it.
    """

    category: str = ""
    summary_schema: Type[S]

    def __init__(self, paths: Optional[ReveriePaths] = None):
        self._paths = paths

    @property
    def paths(self) -> ReveriePaths:
        return self._paths or get_paths()

    def _dir(self, user_id: str) -> Path:
        return self.paths.ledger_dir(self.category, user_id)

    def log(self, user_id: str) -> EventLog:
        return EventLog(self._dir(user_id) / "events.jsonl")

    def summary_path(self, user_id: str) -> Path:
        return self._dir(user_id) / "summary.json"

    # --- subclass hooks ---

    def empty(self, user_id: str) -> S:
        raise NotImplementedError

    def apply(self, summary: S, event: LedgerEvent) -> None:
        raise NotImplementedError

    # --- API ---

    def append(self, user_id: str, kind: str, data: Dict[str, Any],
               recorded: Optional[str] = None) -> str:
        return self.log(user_id).append(kind, data, recorded=recorded)

    def exists(self, user_id: str) -> bool:
        return self.log(user_id).path.exists()

    def load(self, user_id: str) -> S:
        """Materialized summary, advanced to the end of the log."""
        path = self.summary_path(user_id)
        summary = load_validated(path, self.summary_schema)
        if summary is None:
            summary = self.empty(user_id)

        pending = self.log(user_id).read(after_seq=summary.applied_seq)
        if not pending:
            return summary

        for event in pending:
            self.apply(summary, event)
            summary.applied_seq = event.seq
        logger.debug("Folded %d %s events for %s (applied_seq=%d)",
                     len(pending), self.category, user_id, summary.applied_seq)

        try:
            save_validated(path, summary)
        except PersistenceFailure as e:
            # Summary is only a cache; the log still has everything
            logger.warning("Could not save %s summary for %s: %s", self.category, user_id, e)
        return summary

    def rebuild(self, user_id: str) -> S:
        """Discard the summary and replay the whole log."""
        path = self.summary_path(user_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceFailure(f"remove {path}: {e}") from e
        return self.load(user_id)
