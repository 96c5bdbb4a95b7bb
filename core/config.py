# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie config — collaborator endpoints, models, and time bounds.

Resolution order (later wins):
  1. DEFAULT_CONFIG
  2. reverie-config.json in the data dir
  3. REVERIE_* environment variables
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from core.paths import get_paths
from patterns.schemas import PatternConfig

logger = logging.getLogger("reverie.config")

DEFAULT_CONFIG: Dict[str, Any] = {
    "ollama_url": "http://localhost:11434",
    "classifier_model": "mistral:7b",
    "narrative_model": "mistral:7b",
    "classifier_timeout": 30,
    "narrative_timeout": 45,
    "classifier_max_tokens": 500,
    "narrative_max_tokens": 200,
}

# env var -> (config key, caster)
_ENV_OVERRIDES = {
    "REVERIE_OLLAMA_URL": ("ollama_url", str),
    "REVERIE_CLASSIFIER_MODEL": ("classifier_model", str),
    "REVERIE_NARRATIVE_MODEL": ("narrative_model", str),
    "REVERIE_CLASSIFIER_TIMEOUT": ("classifier_timeout", float),
    "REVERIE_NARRATIVE_TIMEOUT": ("narrative_timeout", float),
    "REVERIE_CLASSIFIER_MAX_TOKENS": ("classifier_max_tokens", int),
    "REVERIE_NARRATIVE_MAX_TOKENS": ("narrative_max_tokens", int),
}

_cached: Optional[PatternConfig] = None


def load_config() -> PatternConfig:
    """Load config. A missing or broken file, or an out-of-range value, falls back to defaults."""
    config = dict(DEFAULT_CONFIG)
    config_file = get_paths().config_file
    if config_file.exists():
        try:
            user = json.loads(config_file.read_text())
            if isinstance(user, dict):
                config.update(user)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config %s: %s", config_file, e)

    for env, (key, cast) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env)
        if raw is None:
            continue
        try:
            config[key] = cast(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", env, raw)

    try:
        return PatternConfig.model_validate(config)
    except ValidationError as e:
        bad = {err["loc"][0] for err in e.errors() if err["loc"]}
        logger.warning("Invalid config values %s, using defaults for them: %s", sorted(bad), e)
        for key in bad:
            if key in DEFAULT_CONFIG:
                config[key] = DEFAULT_CONFIG[key]
            else:
                config.pop(key, None)
        return PatternConfig.model_validate(config)


def get_config() -> PatternConfig:
    """Cached config singleton."""
    global _cached
    if _cached is None:
        _cached = load_config()
    return _cached


def reset_config() -> None:
    """Drop the cached config so the next get_config() reloads. For tests."""
    global _cached
    _cached = None
