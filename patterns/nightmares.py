# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Nightmare History — per-user nightmare ledger and summary.

Storage: nightmares/{user}/events.jsonl + summary.json (see patterns.ledger)

Event kinds:
  occurrence  {dream_id, timestamp, themes, emotions}
  analysis    CycleAnalysis — refreshed on each premium+/vip write

Only users with nightmare tracking switched on get a ledger. Cycle
analysis is cached only for tiers with advanced pattern detection; the
summary read recomputes statistics from the occurrences every time, so
an upgraded user sees cycles from their whole history.
"""

import bisect
import logging
from datetime import datetime
from typing import Callable, List, Optional

from core.tiers import has_advanced_pattern_detection, has_psychological_insights
from patterns.events import bus, Events
from patterns.gate import redact
from patterns.ledger import Ledger
from patterns.narrative import NarrativeInsightGenerator
from patterns.schemas import (
    CycleAnalysis, DreamPattern, InsightNightmarePattern, LedgerEvent,
    NightmareHistory, NightmareOccurrence, NightmarePattern, ThemeCount,
)
from patterns.settings import SettingsStore
from patterns.stats import (
    SECONDS_PER_DAY, compute_cycle_statistics, describe_cycle, parse_timestamp, to_utc, utc_now,
)

logger = logging.getLogger("reverie.nightmares")

DAYS_PER_MONTH = 30
TOP_THEMES = 5
MIN_NARRATIVE_OCCURRENCES = 5

# (upper bound exclusive, bucket) in nightmares per month
INTENSITY_THRESHOLDS = ((1, "low"), (2, "moderate"), (4, "high"))

COPING_RECOMMENDATIONS = (
    "Practice relaxation techniques before bed",
    "Maintain a consistent sleep schedule",
    "Keep a dream journal to identify triggers",
    "Consider speaking with a therapist if nightmares are distressing",
)


def intensity_bucket(per_month: float) -> str:
    for bound, bucket in INTENSITY_THRESHOLDS:
        if per_month < bound:
            return bucket
    return "severe"


def monthly_frequency(occurrences: List[NightmareOccurrence]) -> float:
    """Occurrences / max(1, day span / 30)."""
    first = parse_timestamp(occurrences[0].timestamp)
    last = parse_timestamp(occurrences[-1].timestamp)
    span_days = (last - first).total_seconds() / SECONDS_PER_DAY
    return len(occurrences) / max(1.0, span_days / DAYS_PER_MONTH)


class NightmareLedger(Ledger[NightmareHistory]):
    category = "nightmares"
    summary_schema = NightmareHistory

    def empty(self, user_id: str) -> NightmareHistory:
        return NightmareHistory(user_id=user_id)

    def apply(self, summary: NightmareHistory, event: LedgerEvent) -> None:
        if event.kind == "occurrence":
            occ = NightmareOccurrence.model_validate(event.data)
            # Keep ascending order even if a device clock was behind
            keys = [parse_timestamp(o.timestamp) for o in summary.occurrences]
            summary.occurrences.insert(
                bisect.bisect_right(keys, parse_timestamp(occ.timestamp)), occ)
            for theme in occ.themes:
                summary.theme_counts[theme] = summary.theme_counts.get(theme, 0) + 1
            for emotion in occ.emotions:
                summary.emotion_counts[emotion] = summary.emotion_counts.get(emotion, 0) + 1
        elif event.kind == "analysis":
            summary.cycle_analysis = CycleAnalysis.model_validate(event.data)
        else:
            logger.warning("Unknown nightmare event kind %r (seq %d)", event.kind, event.seq)


class NightmareHistoryAggregator:
    """Writes the nightmare ledger and builds the tier-gated summary."""

    def __init__(
        self,
        settings: Optional[SettingsStore] = None,
        ledger: Optional[NightmareLedger] = None,
        narrator: Optional[NarrativeInsightGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or SettingsStore()
        self.ledger = ledger or NightmareLedger()
        self.narrator = narrator or NarrativeInsightGenerator(None)
        self._clock = clock

    def record_nightmare_occurrence(
        self,
        user_id: str,
        dream_id: str,
        pattern: DreamPattern,
        tier: str,
        timestamp: Optional[datetime] = None,
    ) -> Optional[NightmareHistory]:
        """
        Append one nightmare to the user's ledger.

        Returns the updated history, or None when the user hasn't opted in.
        Raises PersistenceFailure if the ledger can't be written.
        """
        if not self.settings.get(user_id).nightmare_tracking:
            logger.debug("Nightmare tracking off for %s, skipping %s", user_id, dream_id)
            return None

        when = to_utc(timestamp or self._clock()).isoformat()
        self.ledger.append(user_id, "occurrence", {
            "dream_id": dream_id,
            "timestamp": when,
            "themes": list(pattern.themes),
            "emotions": list(pattern.emotions),
        }, recorded=when)

        history = self.ledger.load(user_id)
        if has_advanced_pattern_detection(tier):
            analysis = self._analyze(history, tier, when)
            self.ledger.append(user_id, "analysis", analysis.model_dump(), recorded=when)
            history.cycle_analysis = analysis

        logger.info("Nightmare %s recorded for %s (%d total)",
                    dream_id, user_id, len(history.occurrences))
        bus.emit(Events.NIGHTMARE_RECORDED, {
            "user_id": user_id, "dream_id": dream_id,
            "total": len(history.occurrences),
        }, source="nightmares")
        return history

    def _analyze(self, history: NightmareHistory, tier: str, now: str) -> CycleAnalysis:
        stats = compute_cycle_statistics([o.timestamp for o in history.occurrences])
        narrative = None
        if (stats.status == "computed" and has_psychological_insights(tier)
                and len(history.occurrences) >= MIN_NARRATIVE_OCCURRENCES):
            narrative = self.narrator.nightmare_insight(history.occurrences, stats)
        return CycleAnalysis(
            statistics=stats,
            total_occurrences=len(history.occurrences),
            recommendation=describe_cycle(stats),
            narrative_insight=narrative,
            analyzed=now,
        )

    def get_nightmare_pattern_summary(self, user_id: str, tier: str) -> Optional[NightmarePattern]:
        """Tier-gated nightmare summary, or None with no recorded nightmares."""
        if not self.ledger.exists(user_id):
            return None
        history = self.ledger.load(user_id)
        if not history.occurrences:
            return None
        return redact(self._full_summary(history), tier)

    def _full_summary(self, history: NightmareHistory) -> InsightNightmarePattern:
        occurrences = history.occurrences
        frequency = monthly_frequency(occurrences)

        ranked = sorted(history.theme_counts.items(), key=lambda kv: -kv[1])
        stats = compute_cycle_statistics([o.timestamp for o in occurrences])
        recommendation = describe_cycle(stats)
        cached = history.cycle_analysis

        return InsightNightmarePattern(
            frequency=frequency,
            occurrence_count=len(occurrences),
            first_occurrence=occurrences[0].timestamp,
            last_occurrence=occurrences[-1].timestamp,
            common_themes=[ThemeCount(theme=t, count=c) for t, c in ranked[:TOP_THEMES]],
            emotional_intensity=intensity_bucket(frequency),
            coping_recommendations=list(COPING_RECOMMENDATIONS),
            cycle_statistics=stats,
            trigger_patterns=[recommendation] if recommendation else None,
            narrative_insight=cached.narrative_insight if cached else None,
        )
