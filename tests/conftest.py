# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Test configuration — paths isolation, clean singletons, fake collaborators."""

import json
from datetime import datetime, timedelta

import pytest

from core.config import reset_config
from core.paths import configure, reset
from patterns.events import bus


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path, monkeypatch):
    """Route all Reverie data to a temp directory for test isolation."""
    for var in ("REVERIE_OLLAMA_URL", "REVERIE_CLASSIFIER_MODEL", "REVERIE_NARRATIVE_MODEL",
                "REVERIE_CLASSIFIER_TIMEOUT", "REVERIE_NARRATIVE_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)
    paths = configure(tmp_path)
    paths.ensure_dirs()
    reset_config()
    bus.reset()
    yield paths
    bus.reset()
    reset_config()
    reset()


class Clock:
    """Manually advanced clock for injecting into aggregators."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 8, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float = 0, hours: float = 0) -> datetime:
        self.now += timedelta(days=days, hours=hours)
        return self.now


@pytest.fixture
def clock():
    return Clock()


def classifier_reply(type="normal", themes=(), emotions=(), symbols=(), confidence=0.5):
    """Ollama-shaped reply carrying a classification as JSON text."""
    return {"response": json.dumps({
        "type": type,
        "themes": list(themes),
        "emotions": list(emotions),
        "symbols": list(symbols),
        "confidence": confidence,
    })}


class ScriptedCollaborator:
    """Collaborator returning queued replies; raises queued exceptions."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def reply():
    """Factory for classifier replies."""
    return classifier_reply


@pytest.fixture
def scripted():
    """Factory for scripted collaborators."""
    return ScriptedCollaborator
