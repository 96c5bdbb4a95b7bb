# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Narrative Insights — vip-only advisory text from a generative model.

The text is opaque to the engine: we ask for hedged, non-diagnostic
suggestions, store whatever comes back, and never synthesize one locally.
Any failure means "no insight" (None).
"""

import logging
from typing import List, Optional, Sequence

from patterns.events import bus, Events
from patterns.llm import Collaborator, Decoded, decode_payload, strip_code_fences
from patterns.schemas import (
    CollaboratorUnavailable, CycleOccurrence, CycleStatistics,
    MalformedCollaboratorResponse, NightmareOccurrence,
)

logger = logging.getLogger("reverie.narrative")

NIGHTMARE_PROMPT = """Analyze this nightmare pattern and provide POSSIBLE insights. Dream patterns are deeply personal; your observations are suggestions, not diagnoses.

- Total occurrences: {total}
- Average interval: {interval} days
- Pattern consistency: {consistency}
- Recent themes: {recent}

Offer POSSIBLE insights on potential triggers and coping strategies in 2-3 sentences. Use tentative language ("This could suggest...", "You might consider...", "Some people find..."). Do NOT claim definitive meaning or diagnose conditions."""

EVOLUTION_PROMPT = """Analyze how this recurring dream has changed and offer POSSIBLE interpretations. Dream meaning is personal and subjective.

- First occurrence: {first}
- Recent occurrence: {recent}
- New elements: {new}
- Dropped elements: {dropped}
- Total recurrences: {total}

What MIGHT this evolution suggest? Answer in 2-3 sentences with tentative language ("One possibility is...", "The dreamer might consider..."). Invite self-reflection; do NOT claim definitive meaning."""


def _join(items: Sequence[str], empty: str = "none") -> str:
    return ", ".join(items) if items else empty


class NarrativeInsightGenerator:
    """Adapter over the narrative-generation collaborator."""

    def __init__(self, collaborator: Optional[Collaborator]):
        self._collaborator = collaborator

    def nightmare_insight(
        self, occurrences: Sequence[NightmareOccurrence], stats: CycleStatistics,
    ) -> Optional[str]:
        interval = stats.average_interval_days
        prompt = NIGHTMARE_PROMPT.format(
            total=len(occurrences),
            interval=f"{interval:.1f}" if interval is not None else "unknown",
            consistency="High" if stats.consistent else "Low",
            recent="; ".join(_join(o.themes) for o in occurrences[-5:]),
        )
        return self._ask(prompt, "nightmare")

    def evolution_insight(
        self,
        occurrences: Sequence[CycleOccurrence],
        new_elements: List[str],
        dropped_elements: List[str],
    ) -> Optional[str]:
        prompt = EVOLUTION_PROMPT.format(
            first=_join(occurrences[0].themes, "unknown"),
            recent=_join(occurrences[-1].themes, "unknown"),
            new=_join(new_elements),
            dropped=_join(dropped_elements),
            total=len(occurrences),
        )
        return self._ask(prompt, "evolution")

    def _ask(self, prompt: str, topic: str) -> Optional[str]:
        if self._collaborator is None:
            return None
        try:
            payload = self._collaborator(prompt)
        except CollaboratorUnavailable as e:
            logger.warning("Narrative generator unavailable (%s): %s", topic, e)
            bus.emit(Events.COLLABORATOR_UNAVAILABLE,
                     {"collaborator": "narrative", "error": str(e)}, source="narrative")
            return None
        except MalformedCollaboratorResponse as e:
            logger.warning("Narrative generator sent junk (%s): %s", topic, e)
            return None
        except Exception as e:
            logger.warning("Narrative generator raised %s (%s): %s", type(e).__name__, topic, e)
            return None

        result = decode_payload(payload)
        if isinstance(result, Decoded):
            text = strip_code_fences(result.text)
            if text:
                return text
        logger.info("%s insight unavailable, continuing with basic analysis", topic.title())
        return None
