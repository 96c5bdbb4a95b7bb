# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Theme Tracker — per-user, per-theme occurrence counters.

Storage: themes/{user}/{theme_key}.json, one record per (user, theme).
Fetch-then-update; first occurrence is an exclusive create. Two writers
racing on the same brand-new theme get a PersistenceConflict on the
loser, which retries once as an update. After that the increment is
dropped and logged — theme counts never block a dream save.
"""

import logging
import os
from datetime import datetime
from typing import Callable, List, Optional

from core.paths import ReveriePaths, get_paths
from patterns.events import bus, Events
from patterns.schemas import (
    PersistenceConflict, PersistenceFailure, ReverieError, ThemeCounter,
    load_validated, save_validated,
)
from patterns.stats import parse_timestamp, utc_now

logger = logging.getLogger("reverie.themes")

MAX_THEME_KEY = 50


def normalize_theme(theme: str) -> str:
    """Case-fold, collapse whitespace runs to '_', cap at MAX_THEME_KEY chars."""
    return "_".join((theme or "").casefold().split())[:MAX_THEME_KEY]


class ThemeStore:
    """File-per-record counter store with create-if-absent semantics."""

    def __init__(self, paths: Optional[ReveriePaths] = None):
        self._paths = paths

    @property
    def paths(self) -> ReveriePaths:
        return self._paths or get_paths()

    def get(self, user_id: str, theme_key: str) -> Optional[ThemeCounter]:
        path = self.paths.theme_file(user_id, theme_key)
        logger.debug("Loading theme counter from %s", path)
        return load_validated(path, ThemeCounter)

    def create(self, counter: ThemeCounter) -> None:
        """
        Create the record, failing if it already exists.

        The content is written to a private tmp file and hard-linked into
        place, so the record appears complete or not at all.

        Raises:
            PersistenceConflict: another writer created it first.
            PersistenceFailure: any other I/O error.
        """
        path = self.paths.theme_file(counter.user_id, counter.theme_key)
        tmp = path.with_suffix(f".{os.getpid()}.{id(counter)}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(counter.model_dump_json(indent=2))
            try:
                os.link(tmp, path)
            except FileExistsError as e:
                raise PersistenceConflict(f"theme {counter.theme_key!r} already exists") from e
        except OSError as e:
            raise PersistenceFailure(f"create {path}: {e}") from e
        finally:
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass

    def update(self, counter: ThemeCounter) -> None:
        save_validated(self.paths.theme_file(counter.user_id, counter.theme_key), counter)

    def list(self, user_id: str) -> List[ThemeCounter]:
        directory = self.paths.user_themes_dir(user_id)
        if not directory.exists():
            return []
        counters = []
        try:
            files = sorted(directory.glob("*.json"))
        except OSError as e:
            raise PersistenceFailure(f"list {directory}: {e}") from e
        for path in files:
            counter = load_validated(path, ThemeCounter)
            if counter is not None:
                counters.append(counter)
        return counters


class ThemeFrequencyTracker:
    """Maintains the per-(user, theme) counters."""

    def __init__(self, store: Optional[ThemeStore] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.store = store or ThemeStore()
        self._clock = clock

    def record_theme_occurrence(self, user_id: str, theme: str) -> bool:
        """
        Count one occurrence of theme for user.

        Returns True if the increment landed, False if it was dropped.
        Never raises.
        """
        key = normalize_theme(theme)
        if not key:
            logger.debug("Skipping blank theme for %s", user_id)
            return False
        now = self._clock().isoformat()

        try:
            count = self._increment_or_create(user_id, key, theme, now)
        except PersistenceConflict:
            logger.info("Theme %r race detected for %s, retrying as update", key, user_id)
            try:
                count = self._retry_update(user_id, key, now)
            except ReverieError as e:
                return self._drop(user_id, key, f"retry failed: {e}")
            if count is None:
                return self._drop(user_id, key, "record vanished after conflict")
        except ReverieError as e:
            return self._drop(user_id, key, str(e))

        logger.debug("Theme %r for %s now at %d", key, user_id, count)
        bus.emit(Events.THEME_RECORDED,
                 {"user_id": user_id, "theme": key, "count": count}, source="themes")
        return True

    def _increment_or_create(self, user_id: str, key: str, theme: str, now: str) -> int:
        existing = self.store.get(user_id, key)
        if existing is not None:
            return self._bump(existing, now)
        counter = ThemeCounter(
            user_id=user_id, theme_key=key, theme=theme.strip(),
            count=1, created=now, last_occurred=now,
        )
        self.store.create(counter)
        logger.info("Theme %r created for %s", key, user_id)
        return 1

    def _retry_update(self, user_id: str, key: str, now: str) -> Optional[int]:
        existing = self.store.get(user_id, key)
        if existing is None:
            return None
        return self._bump(existing, now)

    def _bump(self, counter: ThemeCounter, now: str) -> int:
        counter.count += 1
        counter.last_occurred = now
        self.store.update(counter)
        return counter.count

    def _drop(self, user_id: str, key: str, reason: str) -> bool:
        logger.warning("Dropped theme increment %r for %s: %s", key, user_id, reason)
        bus.emit(Events.THEME_DROPPED,
                 {"user_id": user_id, "theme": key, "reason": reason}, source="themes")
        return False

    def list_theme_counts(self, user_id: str, limit: Optional[int] = None) -> List[ThemeCounter]:
        """Counters sorted by count (desc), then most recent occurrence."""
        counters = self.store.list(user_id)
        counters.sort(key=lambda c: (-c.count, _desc(c.last_occurred)))
        return counters[:limit] if limit else counters


def _desc(ts: Optional[str]) -> float:
    # Negated epoch so newer sorts first under an ascending sort
    if not ts:
        return 0.0
    try:
        return -parse_timestamp(ts).timestamp()
    except ValueError:
        return 0.0
