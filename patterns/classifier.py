# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Pattern Classifier — dream text in, DreamPattern out.

The classification itself is done by an external collaborator (an LLM).
This adapter builds the prompt, decodes whatever comes back, and validates
the five required fields. Anything short of a clean reply becomes the
neutral pattern: classify() never raises.
"""

import logging
from typing import Any, Dict, List, Optional

from patterns.events import bus, Events
from patterns.llm import (
    Collaborator, Decoded, decode_json_object, decode_payload,
)
from patterns.schemas import (
    CollaboratorUnavailable, DreamPattern, MalformedCollaboratorResponse,
    MAX_PATTERN_ITEMS,
)

logger = logging.getLogger("reverie.classifier")

PATTERN_TYPES = ("nightmare", "recurring", "normal")
LIST_FIELDS = ("themes", "emotions", "symbols")

CLASSIFY_PROMPT = """Analyze this dream description and identify:
1. Type: Is this a nightmare (scary/distressing), recurring theme, or normal dream?
2. Main themes (max 5)
3. Dominant emotions (max 5)
4. Key symbols (max 5)

Dream: {dream}

Respond in JSON format: {{ "type": "nightmare|recurring|normal", "themes": [], "emotions": [], "symbols": [], "confidence": 0.0-1.0 }}"""


def _string_list(data: Dict[str, Any], name: str) -> List[str]:
    value = data.get(name)
    if not isinstance(value, list):
        raise MalformedCollaboratorResponse(f"'{name}' must be a list, got {type(value).__name__}")
    items: List[str] = []
    folded = set()
    for item in value:
        if not isinstance(item, str):
            raise MalformedCollaboratorResponse(f"'{name}' holds a non-string: {item!r}")
        cleaned = " ".join(item.split())
        if cleaned and cleaned.casefold() not in folded:
            folded.add(cleaned.casefold())
            items.append(cleaned)
    return items[:MAX_PATTERN_ITEMS]


def parse_pattern(data: Dict[str, Any]) -> DreamPattern:
    """
    Validate a decoded reply into a DreamPattern.

    Lists are whitespace-normalized, de-duplicated and capped at 5.
    Raises MalformedCollaboratorResponse on a missing or invalid field.
    """
    raw_type = data.get("type")
    if not isinstance(raw_type, str) or raw_type.strip().lower() not in PATTERN_TYPES:
        raise MalformedCollaboratorResponse(f"invalid type: {raw_type!r}")

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise MalformedCollaboratorResponse(f"invalid confidence: {confidence!r}")
    if not 0.0 <= confidence <= 1.0:
        raise MalformedCollaboratorResponse(f"confidence out of range: {confidence}")

    return DreamPattern(
        type=raw_type.strip().lower(),
        themes=_string_list(data, "themes"),
        emotions=_string_list(data, "emotions"),
        symbols=_string_list(data, "symbols"),
        confidence=float(confidence),
    )


class PatternClassifier:
    """Adapter over the text-classification collaborator."""

    def __init__(self, collaborator: Optional[Collaborator]):
        self._collaborator = collaborator

    def classify(self, dream_text: str) -> DreamPattern:
        """Classify one dream. Falls back to DreamPattern.neutral() on any failure."""
        if not dream_text or not dream_text.strip():
            logger.info("Empty dream text, using neutral pattern")
            return DreamPattern.neutral()
        if self._collaborator is None:
            logger.info("No classifier configured, using neutral pattern")
            return DreamPattern.neutral()

        prompt = CLASSIFY_PROMPT.format(dream=dream_text.strip())
        try:
            payload = self._collaborator(prompt)
        except CollaboratorUnavailable as e:
            logger.warning("Classifier unavailable, using neutral pattern: %s", e)
            bus.emit(Events.COLLABORATOR_UNAVAILABLE,
                     {"collaborator": "classifier", "error": str(e)}, source="classifier")
            return DreamPattern.neutral()
        except MalformedCollaboratorResponse as e:
            return self._fallback(f"malformed transport reply: {e}")
        except Exception as e:
            logger.warning("Classifier call raised %s: %s", type(e).__name__, e)
            return self._fallback(f"collaborator error: {type(e).__name__}")

        result = decode_payload(payload)
        if not isinstance(result, Decoded):
            # Empty replies happen; not an error
            return self._fallback(result.reason, level=logging.INFO)

        try:
            pattern = parse_pattern(decode_json_object(result.text))
        except MalformedCollaboratorResponse as e:
            return self._fallback(f"{e} (reply: {result.text[:100]!r})")

        logger.debug(
            "Classified dream as %s (confidence %.2f, %d themes, %d symbols)",
            pattern.type, pattern.confidence, len(pattern.themes), len(pattern.symbols),
        )
        return pattern

    def _fallback(self, reason: str, level: int = logging.WARNING) -> DreamPattern:
        logger.log(level, "Pattern analysis using neutral pattern: %s", reason)
        bus.emit(Events.CLASSIFIER_FALLBACK, {"reason": reason}, source="classifier")
        return DreamPattern.neutral()
