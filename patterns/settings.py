# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie pattern settings — per-user opt-ins for the two ledgers.

Storage: settings/{user}.json
Both opt-ins default to off: no nightmare ledger and no cycle ledger is
written until the user asks for it. Theme counts don't need an opt-in.
"""

import logging
from typing import Optional

from core.paths import ReveriePaths, get_paths
from patterns.events import bus, Events
from patterns.schemas import PatternSettings, load_validated, save_validated
from patterns.stats import utc_now

logger = logging.getLogger("reverie.settings")


class SettingsStore:

    def __init__(self, paths: Optional[ReveriePaths] = None):
        self._paths = paths

    @property
    def paths(self) -> ReveriePaths:
        return self._paths or get_paths()

    def get(self, user_id: str) -> PatternSettings:
        path = self.paths.settings_file(user_id)
        logger.debug("Loading pattern settings from %s", path)
        return load_validated(path, PatternSettings, default={"user_id": user_id})

    def update(
        self,
        user_id: str,
        nightmare_tracking: Optional[bool] = None,
        recurring_dreams: Optional[bool] = None,
    ) -> PatternSettings:
        settings = self.get(user_id)
        changed = False
        if nightmare_tracking is not None and nightmare_tracking != settings.nightmare_tracking:
            settings.nightmare_tracking = nightmare_tracking
            changed = True
        if recurring_dreams is not None and recurring_dreams != settings.recurring_dreams:
            settings.recurring_dreams = recurring_dreams
            changed = True
        if not changed:
            return settings

        settings.updated = utc_now().isoformat()
        save_validated(self.paths.settings_file(user_id), settings)
        logger.info("Pattern settings for %s: nightmares=%s recurring=%s",
                    user_id, settings.nightmare_tracking, settings.recurring_dreams)
        bus.emit(Events.SETTINGS_UPDATED, settings.model_dump(), source="settings")
        return settings
