# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Recurring Cycles — cluster dreams by shared themes and symbols.

A cycle is founded by one dream: its themes ∪ symbols become the cycle's
common_elements and stay fixed from then on. Each later dream is compared
against every cycle in creation order and joins the FIRST one with

    |candidate ∩ common| / max(|candidate|, |common|) >= 0.5

or founds a new cycle if none qualifies. A dream joins at most one cycle.

Storage: cycles/{user}/events.jsonl + summary.json (see patterns.ledger)

Event kinds:
  occurrence  {dream_id, timestamp, themes, symbols, tier}
              matching is replayed on fold, so the log is the only truth
  narrative   {cycle_id, based_on, narrative_insight}  (vip)
"""

import bisect
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set, Tuple

from core.tiers import has_advanced_pattern_detection, has_psychological_insights
from patterns.events import bus, Events
from patterns.gate import redact
from patterns.ledger import Ledger
from patterns.narrative import NarrativeInsightGenerator
from patterns.schemas import (
    Cycle, CycleEvolution, CycleOccurrence, DreamPattern, EvolutionView,
    InsightCycleView, LedgerEvent, RecurringCycleLedger, RecurringCycleView,
)
from patterns.settings import SettingsStore
from patterns.stats import (
    average_interval_days, compute_cycle_statistics, parse_timestamp, to_utc, utc_now,
)

logger = logging.getLogger("reverie.cycles")

SIMILARITY_THRESHOLD = 0.5
MIN_EVOLUTION_NARRATIVE_OCCURRENCES = 4


# ============================================================================
# Pure matching helpers
# ============================================================================

def _element(value: str) -> str:
    return value.strip().casefold()


def element_set(values: Iterable[str]) -> Set[str]:
    return {_element(v) for v in values if v and v.strip()}


def candidate_elements(themes: Iterable[str], symbols: Iterable[str]) -> List[str]:
    """themes ∪ symbols, normalized, in first-seen order."""
    seen: List[str] = []
    for value in list(themes) + list(symbols):
        key = _element(value)
        if key and key not in seen:
            seen.append(key)
    return seen


def similarity(candidate: Iterable[str], common: Iterable[str]) -> float:
    a, b = element_set(candidate), element_set(common)
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


def find_matching_cycle(cycles: List[Cycle], candidate: Iterable[str]) -> Optional[Cycle]:
    """First cycle in stored order at or above the threshold."""
    candidate = list(candidate)
    for cycle in cycles:
        if similarity(candidate, cycle.common_elements) >= SIMILARITY_THRESHOLD:
            return cycle
    return None


def compute_evolution(cycle: Cycle) -> CycleEvolution:
    """Diff the first occurrence's themes against the latest occurrence's."""
    first = element_set(cycle.occurrences[0].themes)
    latest = element_set(cycle.occurrences[-1].themes)
    new = sorted(latest - first)
    dropped = sorted(first - latest)
    return CycleEvolution(
        stability="evolving" if new or dropped else "stable",
        new_elements=new,
        dropped_elements=dropped,
    )


def _insert_sorted(cycle: Cycle, occ: CycleOccurrence) -> None:
    keys = [parse_timestamp(o.timestamp) for o in cycle.occurrences]
    cycle.occurrences.insert(bisect.bisect_right(keys, parse_timestamp(occ.timestamp)), occ)


# ============================================================================
# Ledger
# ============================================================================

class CycleLedger(Ledger[RecurringCycleLedger]):
    category = "cycles"
    summary_schema = RecurringCycleLedger

    def empty(self, user_id: str) -> RecurringCycleLedger:
        return RecurringCycleLedger(user_id=user_id)

    def apply(self, summary: RecurringCycleLedger, event: LedgerEvent) -> None:
        if event.kind == "occurrence":
            self._apply_occurrence(summary, event)
        elif event.kind == "narrative":
            self._apply_narrative(summary, event)
        else:
            logger.warning("Unknown cycle event kind %r (seq %d)", event.kind, event.seq)

    def _apply_occurrence(self, summary: RecurringCycleLedger, event: LedgerEvent) -> None:
        data = event.data
        occ = CycleOccurrence(
            dream_id=data.get("dream_id", ""),
            timestamp=data.get("timestamp", event.recorded),
            themes=list(data.get("themes", [])),
            symbols=list(data.get("symbols", [])),
            event_id=event.event_id,
        )
        candidate = data.get("candidate") or candidate_elements(occ.themes, occ.symbols)
        if not candidate:
            return

        cycle = find_matching_cycle(summary.cycles, candidate)
        if cycle is None:
            summary.cycles.append(Cycle(
                cycle_id=f"cycle_{event.event_id[:12]}",
                first_occurrence=occ.timestamp,
                common_elements=list(candidate),
                occurrences=[occ],
            ))
            return

        _insert_sorted(cycle, occ)
        cycle.first_occurrence = cycle.occurrences[0].timestamp
        if has_advanced_pattern_detection(data.get("tier", "")):
            cycle.evolution = compute_evolution(cycle)
            cycle.evolution.based_on = event.event_id

    def _apply_narrative(self, summary: RecurringCycleLedger, event: LedgerEvent) -> None:
        data = event.data
        for cycle in summary.cycles:
            if cycle.cycle_id != data.get("cycle_id"):
                continue
            # A newer occurrence already superseded the evolution this was written for
            if cycle.evolution is not None and cycle.evolution.based_on == data.get("based_on"):
                cycle.evolution.narrative_insight = data.get("narrative_insight")
            return


# ============================================================================
# Matcher
# ============================================================================

class RecurringCycleMatcher:
    """Attaches dreams to recurring cycles and builds tier-gated cycle views."""

    def __init__(
        self,
        settings: Optional[SettingsStore] = None,
        ledger: Optional[CycleLedger] = None,
        narrator: Optional[NarrativeInsightGenerator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or SettingsStore()
        self.ledger = ledger or CycleLedger()
        self.narrator = narrator or NarrativeInsightGenerator(None)
        self._clock = clock

    def match_or_create_cycle(
        self,
        user_id: str,
        dream_id: str,
        pattern: DreamPattern,
        tier: str,
        timestamp: Optional[datetime] = None,
    ) -> Optional[Cycle]:
        """
        Attach a dream to the first similar cycle, or found a new one.

        Returns the cycle the dream ended up in. None when the user hasn't
        opted in to recurring dreams or the pattern has no elements.
        Raises PersistenceFailure if the ledger can't be written.
        """
        if not self.settings.get(user_id).recurring_dreams:
            logger.debug("Recurring dreams off for %s, skipping %s", user_id, dream_id)
            return None

        candidate = candidate_elements(pattern.themes, pattern.symbols)
        if not candidate:
            logger.debug("Dream %s has no themes or symbols, not clustering", dream_id)
            return None

        when = to_utc(timestamp or self._clock()).isoformat()
        event_id = self.ledger.append(user_id, "occurrence", {
            "dream_id": dream_id,
            "timestamp": when,
            "themes": list(pattern.themes),
            "symbols": list(pattern.symbols),
            "candidate": candidate,
            "tier": tier,
        }, recorded=when)

        ledger = self.ledger.load(user_id)
        cycle, created = self._locate(ledger, event_id)
        if cycle is None:
            logger.warning("Occurrence %s for %s not found after fold", event_id, user_id)
            return None

        if created:
            logger.info("New recurring cycle %s for %s from %s", cycle.cycle_id, user_id, dream_id)
            bus.emit(Events.CYCLE_CREATED, {
                "user_id": user_id, "cycle_id": cycle.cycle_id,
                "common_elements": list(cycle.common_elements),
            }, source="cycles")
            return cycle

        logger.info("Dream %s joined cycle %s for %s (%d occurrences)",
                    dream_id, cycle.cycle_id, user_id, len(cycle.occurrences))
        self._maybe_narrate(user_id, cycle, event_id, tier)
        bus.emit(Events.CYCLE_MATCHED, {
            "user_id": user_id, "cycle_id": cycle.cycle_id,
            "dream_id": dream_id, "occurrences": len(cycle.occurrences),
        }, source="cycles")
        return cycle

    @staticmethod
    def _locate(ledger: RecurringCycleLedger, event_id: str) -> Tuple[Optional[Cycle], bool]:
        for cycle in ledger.cycles:
            if any(occ.event_id == event_id for occ in cycle.occurrences):
                return cycle, cycle.cycle_id == f"cycle_{event_id[:12]}"
        return None, False

    def _maybe_narrate(self, user_id: str, cycle: Cycle, event_id: str, tier: str) -> None:
        if not has_psychological_insights(tier):
            return
        if len(cycle.occurrences) < MIN_EVOLUTION_NARRATIVE_OCCURRENCES:
            return
        evolution = cycle.evolution
        if evolution is None or evolution.based_on != event_id:
            return

        insight = self.narrator.evolution_insight(
            cycle.occurrences, evolution.new_elements, evolution.dropped_elements)
        if not insight:
            return
        self.ledger.append(user_id, "narrative", {
            "cycle_id": cycle.cycle_id,
            "based_on": event_id,
            "narrative_insight": insight,
        })
        evolution.narrative_insight = insight

    def get_recurring_cycles(self, user_id: str, tier: str) -> List[RecurringCycleView]:
        """Tier-gated views of every cycle, in creation order."""
        if not self.ledger.exists(user_id):
            return []
        ledger = self.ledger.load(user_id)
        return [redact(self._full_view(c), tier) for c in ledger.cycles]

    @staticmethod
    def _full_view(cycle: Cycle) -> InsightCycleView:
        timestamps = [o.timestamp for o in cycle.occurrences]
        evolution = cycle.evolution
        return InsightCycleView(
            cycle_id=cycle.cycle_id,
            first_occurrence=timestamps[0],
            last_occurrence=timestamps[-1],
            occurrence_count=len(timestamps),
            average_interval_days=average_interval_days(timestamps),
            common_elements=list(cycle.common_elements),
            cycle_statistics=compute_cycle_statistics(timestamps),
            evolution=EvolutionView(
                stability=evolution.stability,
                new_elements=list(evolution.new_elements),
                dropped_elements=list(evolution.dropped_elements),
            ) if evolution else None,
            narrative_insight=evolution.narrative_insight if evolution else None,
        )
