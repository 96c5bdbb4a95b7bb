# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Paths — single source of truth for all data file locations.

Resolution order:
  1. REVERIE_DATA_DIR environment variable
  2. Default: ~/.reverie/

Layout (one independent store per tracked feature):
  reverie-config.json
  reverie-daemon.log
  themes/{user}/{theme_key}.json          one counter per (user, theme)
  nightmares/{user}/events.jsonl          append-only occurrence log
  nightmares/{user}/summary.json          materialized ledger
  cycles/{user}/events.jsonl
  cycles/{user}/summary.json
  settings/{user}.json                    pattern-tracking opt-ins

Usage:
    from core.paths import get_paths
    p = get_paths()
    p.theme_file("u1", "falling")

For tests:
    from core.paths import configure
    configure(tmp_path)  # all paths now rooted under tmp_path
"""

import hashlib
import os
import re
from pathlib import Path
from typing import Optional

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]")


def safe_component(value: str) -> str:
    """Turn an arbitrary id into a single filesystem-safe path component."""
    cleaned = _SAFE_NAME.sub("_", value)[:64].strip(".") or "_"
    if cleaned != value:
        # Keep distinct ids distinct after cleaning
        digest = hashlib.sha1(value.encode("utf-8")).hexdigest()[:8]
        cleaned = f"{cleaned}-{digest}"
    return cleaned


class ReveriePaths:
    """Central registry of every file and directory Reverie uses."""

    def __init__(self, data_dir: Optional[Path] = None):
        if data_dir is not None:
            self._root = Path(data_dir)
        else:
            env = os.environ.get("REVERIE_DATA_DIR")
            if env:
                self._root = Path(env).expanduser()
            else:
                self._root = Path.home() / ".reverie"

    # ------------------------------------------------------------------
    # Root
    # ------------------------------------------------------------------
    @property
    def data_dir(self) -> Path:
        return self._root

    @property
    def config_file(self) -> Path:
        return self._root / "reverie-config.json"

    @property
    def daemon_log(self) -> Path:
        return self._root / "reverie-daemon.log"

    # ------------------------------------------------------------------
    # Theme counters
    # ------------------------------------------------------------------
    @property
    def themes_dir(self) -> Path:
        return self._root / "themes"

    def user_themes_dir(self, user_id: str) -> Path:
        return self.themes_dir / safe_component(user_id)

    def theme_file(self, user_id: str, theme_key: str) -> Path:
        return self.user_themes_dir(user_id) / f"{safe_component(theme_key)}.json"

    # ------------------------------------------------------------------
    # Ledgers
    # ------------------------------------------------------------------
    @property
    def nightmares_dir(self) -> Path:
        return self._root / "nightmares"

    @property
    def cycles_dir(self) -> Path:
        return self._root / "cycles"

    def ledger_dir(self, category: str, user_id: str) -> Path:
        return self._root / category / safe_component(user_id)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    @property
    def settings_dir(self) -> Path:
        return self._root / "settings"

    def settings_file(self, user_id: str) -> Path:
        return self.settings_dir / f"{safe_component(user_id)}.json"

    # ------------------------------------------------------------------
    # Directory creation
    # ------------------------------------------------------------------
    def ensure_dirs(self) -> None:
        """Create all required directories."""
        dirs = [
            self.data_dir,
            self.themes_dir,
            self.nightmares_dir,
            self.cycles_dir,
            self.settings_dir,
        ]
        for d in dirs:
            d.mkdir(parents=True, exist_ok=True)


# ===========================================================================
# Singleton
# ===========================================================================

_instance: Optional[ReveriePaths] = None


def get_paths() -> ReveriePaths:
    """Return the global ReveriePaths singleton (lazy-init)."""
    global _instance
    if _instance is None:
        _instance = ReveriePaths()
    return _instance


def configure(data_dir: Path) -> ReveriePaths:
    """
    Override the global paths singleton. Used by tests and CLI --data-dir.

    Returns the new instance for convenience.
    """
    global _instance
    _instance = ReveriePaths(data_dir=data_dir)
    return _instance


def reset() -> None:
    """Reset singleton so next get_paths() re-reads env."""
    global _instance
    _instance = None
