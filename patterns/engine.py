# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Pattern Engine — the one inbound entry point and the two reads.

    analyze_dream_for_patterns(dream_text, dream_id, user_id, tier)
        classify → fan out to:
          themes      always, one counter per theme
          nightmares  type == nightmare            and nightmare tracking on
          cycles      type == recurring or conf>0.7 and recurring dreams on

The three branches fail independently: an error in one is logged and
reported on the bus, never raised to the caller, and never stops the
others. The classified pattern is always returned.

    get_nightmare_pattern_summary(user_id, tier)
    get_recurring_cycles(user_id, tier)

Both reads recompute presentation fields every call and pass the result
through the tier gate.

Module-level functions use a lazily built engine wired from config.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import Callable, List, Optional

from core.config import get_config
from core.tiers import normalize_tier
from patterns.classifier import PatternClassifier
from patterns.cycles import RecurringCycleMatcher
from patterns.events import bus, Events
from patterns.llm import OllamaClient
from patterns.narrative import NarrativeInsightGenerator
from patterns.nightmares import NightmareHistoryAggregator
from patterns.schemas import DreamPattern, NightmarePattern, RecurringCycleView
from patterns.settings import SettingsStore
from patterns.stats import utc_now
from patterns.themes import ThemeFrequencyTracker, normalize_theme
from patterns.workers import WorkerPool, WorkerPoolBusy, get_pool

logger = logging.getLogger("reverie.engine")

RECURRING_CONFIDENCE = 0.7


class PatternEngine:
    """Wires the classifier and the three aggregators together."""

    def __init__(
        self,
        classifier: PatternClassifier,
        themes: Optional[ThemeFrequencyTracker] = None,
        nightmares: Optional[NightmareHistoryAggregator] = None,
        cycles: Optional[RecurringCycleMatcher] = None,
        settings: Optional[SettingsStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or SettingsStore()
        self.classifier = classifier
        self.themes = themes or ThemeFrequencyTracker(clock=clock)
        self.nightmares = nightmares or NightmareHistoryAggregator(settings=self.settings, clock=clock)
        self.cycles = cycles or RecurringCycleMatcher(settings=self.settings, clock=clock)
        self._clock = clock

    def analyze_dream_for_patterns(
        self, dream_text: str, dream_id: str, user_id: str, tier: str,
    ) -> DreamPattern:
        """Classify a dream and feed every interested aggregator. Never raises."""
        tier = normalize_tier(tier)
        pattern = self.classifier.classify(dream_text)
        now = self._clock()

        # One increment per counter key, however the classifier spelled it
        seen = set()
        for theme in pattern.themes:
            key = normalize_theme(theme)
            if not key or key in seen:
                continue
            seen.add(key)
            self._branch("themes", user_id, dream_id,
                         self.themes.record_theme_occurrence, user_id, theme)

        # Settings are read once; each aggregator re-checks its own opt-in
        prefs = self._branch("settings", user_id, dream_id, self.settings.get, user_id)
        if prefs is not None:
            if pattern.type == "nightmare" and prefs.nightmare_tracking:
                self._branch("nightmares", user_id, dream_id,
                             self.nightmares.record_nightmare_occurrence,
                             user_id, dream_id, pattern, tier, timestamp=now)
            if ((pattern.type == "recurring" or pattern.confidence > RECURRING_CONFIDENCE)
                    and prefs.recurring_dreams):
                self._branch("cycles", user_id, dream_id,
                             self.cycles.match_or_create_cycle,
                             user_id, dream_id, pattern, tier, timestamp=now)

        logger.info("Analyzed dream %s for %s: %s (%.2f)",
                    dream_id, user_id, pattern.type, pattern.confidence)
        bus.emit(Events.DREAM_ANALYZED, {
            "user_id": user_id, "dream_id": dream_id,
            "type": pattern.type, "confidence": pattern.confidence,
        }, source="engine")
        return pattern

    @staticmethod
    def _branch(name: str, user_id: str, dream_id: str, fn: Callable, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            logger.error("Pattern %s branch failed for dream %s (%s): %s",
                         name, dream_id, user_id, e, exc_info=True)
            bus.emit(Events.AGGREGATION_FAILED, {
                "branch": name, "user_id": user_id, "dream_id": dream_id,
                "error": f"{type(e).__name__}: {e}",
            }, source="engine")
            return None

    def get_nightmare_pattern_summary(self, user_id: str, tier: str) -> Optional[NightmarePattern]:
        return self.nightmares.get_nightmare_pattern_summary(user_id, normalize_tier(tier))

    def get_recurring_cycles(self, user_id: str, tier: str) -> List[RecurringCycleView]:
        return self.cycles.get_recurring_cycles(user_id, normalize_tier(tier))

    def submit(
        self, dream_text: str, dream_id: str, user_id: str, tier: str,
        pool: Optional[WorkerPool] = None,
    ) -> Future:
        """Run analysis on the worker pool. Raises WorkerPoolBusy when full."""
        return (pool or get_pool()).submit_sync(
            self.analyze_dream_for_patterns, dream_text, dream_id, user_id, tier)


# ============================================================================
# SINGLETON — built from config on first use
# ============================================================================

_engine: Optional[PatternEngine] = None
_engine_lock = threading.Lock()


def build_engine() -> PatternEngine:
    """Engine wired to Ollama per the current config."""
    config = get_config()
    client = OllamaClient(config.ollama_url, timeout=config.classifier_timeout)
    classifier = PatternClassifier(client.collaborator(
        config.classifier_model, config.classifier_max_tokens,
        timeout=config.classifier_timeout, temperature=0.3,
    ))
    narrator = NarrativeInsightGenerator(client.collaborator(
        config.narrative_model, config.narrative_max_tokens,
        timeout=config.narrative_timeout, temperature=0.7,
    ))
    settings = SettingsStore()
    return PatternEngine(
        classifier,
        settings=settings,
        nightmares=NightmareHistoryAggregator(settings=settings, narrator=narrator),
        cycles=RecurringCycleMatcher(settings=settings, narrator=narrator),
    )


def get_engine() -> PatternEngine:
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = build_engine()
            logger.info("Pattern engine initialized")
        return _engine


def set_engine(engine: Optional[PatternEngine]) -> None:
    """Swap the global engine. None resets to lazy init. For tests and the CLI."""
    global _engine
    with _engine_lock:
        _engine = engine


# ============================================================================
# Module-level API
# ============================================================================

def analyze_dream_for_patterns(dream_text: str, dream_id: str, user_id: str, tier: str) -> DreamPattern:
    return get_engine().analyze_dream_for_patterns(dream_text, dream_id, user_id, tier)


def get_nightmare_pattern_summary(user_id: str, tier: str) -> Optional[NightmarePattern]:
    return get_engine().get_nightmare_pattern_summary(user_id, tier)


def get_recurring_cycles(user_id: str, tier: str) -> List[RecurringCycleView]:
    return get_engine().get_recurring_cycles(user_id, tier)


def submit_dream_analysis(dream_text: str, dream_id: str, user_id: str, tier: str) -> Future:
    """Fire-and-forget analysis for the dream-save path. Raises WorkerPoolBusy."""
    return get_engine().submit(dream_text, dream_id, user_id, tier)


async def analyze_dream_for_patterns_async(
    dream_text: str, dream_id: str, user_id: str, tier: str,
    timeout: Optional[float] = None,
) -> DreamPattern:
    """
    Await analysis from async code without blocking the loop.

    On timeout the neutral pattern is returned; the analysis itself keeps
    running on the pool and still lands in the stores. A full pool also
    gives the neutral pattern, and that dream is not aggregated.
    """
    try:
        future = submit_dream_analysis(dream_text, dream_id, user_id, tier)
    except WorkerPoolBusy as e:
        logger.warning("Dream %s not analyzed: %s", dream_id, e)
        return DreamPattern.neutral()
    try:
        return await asyncio.wait_for(asyncio.shield(asyncio.wrap_future(future)), timeout)
    except asyncio.TimeoutError:
        logger.warning("Dream %s analysis still running after %ss, returning neutral pattern",
                       dream_id, timeout)
        return DreamPattern.neutral()
