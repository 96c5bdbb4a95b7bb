# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Schema Registry — Pydantic models for every pattern structure.

Single source of truth for the transient classifier output, the persisted
per-user ledgers, and the tier-gated insight views returned to callers.

Usage:
    from patterns.schemas import NightmareHistory, load_validated, save_validated

    history = load_validated(path, NightmareHistory)
    save_validated(path, history)

Persisted models use extra="allow" so data written by newer versions with
unknown fields won't break — we just won't validate those extra fields.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Base config — all models inherit this
# ============================================================================

class ReverieModel(BaseModel):
    """Base for all Reverie schemas. Allows extra fields for forward compat."""
    model_config = {"extra": "allow"}


# ============================================================================
# Custom exceptions — the pattern engine's error taxonomy
# ============================================================================

class ReverieError(Exception):
    """Base for every error raised inside the pattern engine."""


class CollaboratorUnavailable(ReverieError):
    """Timeout or network failure calling the classifier or narrative model."""


class MalformedCollaboratorResponse(ReverieError):
    """Collaborator replied, but the reply is unparsable or off-schema."""


class PersistenceConflict(ReverieError):
    """A concurrent writer created the same record first."""


class PersistenceFailure(ReverieError):
    """Backend unreachable on read or write."""


# ============================================================================
# CONFIG
# ============================================================================

class PatternConfig(ReverieModel):
    """Runtime config: reverie-config.json + REVERIE_* env overrides."""
    ollama_url: str = "http://localhost:11434"
    classifier_model: str = "mistral:7b"
    narrative_model: str = "mistral:7b"
    classifier_timeout: float = Field(default=30, gt=0)
    narrative_timeout: float = Field(default=45, gt=0)
    classifier_max_tokens: int = Field(default=500, ge=1)
    narrative_max_tokens: int = Field(default=200, ge=1)


# ============================================================================
# CLASSIFIER OUTPUT
# ============================================================================

PatternType = Literal["nightmare", "recurring", "normal"]

MAX_PATTERN_ITEMS = 5


class DreamPattern(ReverieModel):
    """Classifier output for one dream. Transient — never persisted as-is."""
    type: PatternType = "normal"
    themes: List[str] = Field(default_factory=list, max_length=MAX_PATTERN_ITEMS)
    emotions: List[str] = Field(default_factory=list, max_length=MAX_PATTERN_ITEMS)
    symbols: List[str] = Field(default_factory=list, max_length=MAX_PATTERN_ITEMS)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @classmethod
    def neutral(cls) -> "DreamPattern":
        """The fallback pattern used whenever classification fails."""
        return cls(type="normal", themes=[], emotions=[], symbols=[], confidence=0.0)


# ============================================================================
# THEME COUNTERS
# ============================================================================

class ThemeCounter(ReverieModel):
    """One counter per (user, theme): themes/{user}/{theme_key}.json"""
    user_id: str
    theme_key: str
    theme: str
    count: int = Field(default=0, ge=0)
    created: Optional[str] = None
    last_occurred: Optional[str] = None


# ============================================================================
# LEDGER EVENTS
# ============================================================================

class LedgerEvent(ReverieModel):
    """Single line of an append-only ledger log ({category}/{user}/events.jsonl)."""
    seq: int = 0  # assigned on read: 1-based line position
    event_id: str = ""
    kind: str
    recorded: str
    data: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# CYCLE STATISTICS
# ============================================================================

class CycleStatistics(ReverieModel):
    """Periodicity of a series of occurrence timestamps."""
    status: Literal["insufficient", "computed"] = "insufficient"
    average_interval_days: Optional[float] = None
    std_dev_days: Optional[float] = None
    consistent: Optional[bool] = None


class CycleAnalysis(ReverieModel):
    """Cached nightmare cycle analysis (premium+ at write time)."""
    statistics: CycleStatistics = Field(default_factory=CycleStatistics)
    total_occurrences: int = 0
    recommendation: Optional[str] = None
    narrative_insight: Optional[str] = None
    analyzed: Optional[str] = None


# ============================================================================
# NIGHTMARE LEDGER
# ============================================================================

class NightmareOccurrence(ReverieModel):
    """One nightmare in the user's history."""
    dream_id: str
    timestamp: str
    themes: List[str] = Field(default_factory=list)
    emotions: List[str] = Field(default_factory=list)


class NightmareHistory(ReverieModel):
    """Materialized nightmare ledger: nightmares/{user}/summary.json"""
    user_id: str
    occurrences: List[NightmareOccurrence] = Field(default_factory=list)
    theme_counts: Dict[str, int] = Field(default_factory=dict)
    emotion_counts: Dict[str, int] = Field(default_factory=dict)
    cycle_analysis: Optional[CycleAnalysis] = None
    applied_seq: int = 0


# ============================================================================
# RECURRING CYCLE LEDGER
# ============================================================================

class CycleOccurrence(ReverieModel):
    """One dream attached to a recurring cycle."""
    dream_id: str
    timestamp: str
    themes: List[str] = Field(default_factory=list)
    symbols: List[str] = Field(default_factory=list)
    event_id: str = ""


class CycleEvolution(ReverieModel):
    """How a cycle's themes moved between its first and latest occurrence."""
    stability: Literal["stable", "evolving"] = "stable"
    new_elements: List[str] = Field(default_factory=list)
    dropped_elements: List[str] = Field(default_factory=list)
    narrative_insight: Optional[str] = None
    based_on: str = ""  # event_id of the occurrence it was computed at


class Cycle(ReverieModel):
    """A persistent cluster of dreams sharing a founding element set."""
    cycle_id: str
    first_occurrence: str
    common_elements: List[str] = Field(default_factory=list)  # fixed at creation
    occurrences: List[CycleOccurrence] = Field(default_factory=list)
    evolution: Optional[CycleEvolution] = None


class RecurringCycleLedger(ReverieModel):
    """Materialized cycle ledger: cycles/{user}/summary.json"""
    user_id: str
    cycles: List[Cycle] = Field(default_factory=list)
    applied_seq: int = 0


# ============================================================================
# SETTINGS
# ============================================================================

class PatternSettings(ReverieModel):
    """Per-user opt-ins: settings/{user}.json"""
    user_id: str
    nightmare_tracking: bool = False
    recurring_dreams: bool = False
    updated: Optional[str] = None


# ============================================================================
# INSIGHT VIEWS — what callers see, narrowed by the tier gate
# ============================================================================

IntensityBucket = Literal["low", "moderate", "high", "severe"]


class ThemeCount(ReverieModel):
    theme: str
    count: int


class NightmarePattern(ReverieModel):
    """Nightmare summary visible on every tier."""
    frequency: float  # nightmares per month
    occurrence_count: int
    first_occurrence: str
    last_occurrence: str
    common_themes: List[ThemeCount] = Field(default_factory=list)
    emotional_intensity: IntensityBucket = "low"
    coping_recommendations: List[str] = Field(default_factory=list)


class AdvancedNightmarePattern(NightmarePattern):
    """Premium view: adds cycle detection."""
    cycle_statistics: CycleStatistics = Field(default_factory=CycleStatistics)
    trigger_patterns: Optional[List[str]] = None


class InsightNightmarePattern(AdvancedNightmarePattern):
    """VIP view: adds the narrative insight."""
    narrative_insight: Optional[str] = None


class EvolutionView(ReverieModel):
    stability: Literal["stable", "evolving"]
    new_elements: List[str] = Field(default_factory=list)
    dropped_elements: List[str] = Field(default_factory=list)


class RecurringCycleView(ReverieModel):
    """Recurring cycle visible on every tier."""
    cycle_id: str
    first_occurrence: str
    last_occurrence: str
    occurrence_count: int
    average_interval_days: float = 0.0
    common_elements: List[str] = Field(default_factory=list)


class AdvancedCycleView(RecurringCycleView):
    """Premium view: adds cycle detection and evolution."""
    cycle_statistics: CycleStatistics = Field(default_factory=CycleStatistics)
    evolution: Optional[EvolutionView] = None


class InsightCycleView(AdvancedCycleView):
    """VIP view: adds the narrative insight."""
    narrative_insight: Optional[str] = None


# ============================================================================
# UTILITY — validated load/save helpers
# ============================================================================

import json
import logging
import os
from pathlib import Path
from typing import Type, TypeVar

T = TypeVar("T", bound=ReverieModel)

logger = logging.getLogger("reverie.schemas")


def load_validated(path: Path, schema: Type[T], default: Any = None) -> Optional[T]:
    """
    Load JSON from file and validate against schema.

    Args:
        path: Path to JSON file
        schema: Pydantic model class to validate against
        default: Dict to validate if the file is missing or corrupt.
                 If None, a missing or corrupt file returns None.

    Raises:
        PersistenceFailure: the file exists but can't be read.
    """
    if not path.exists():
        return schema.model_validate(default) if default is not None else None

    try:
        raw = path.read_text()
    except OSError as e:
        raise PersistenceFailure(f"read {path}: {e}") from e

    try:
        return schema.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("Invalid %s at %s, using defaults: %s", schema.__name__, path, e)
        return schema.model_validate(default) if default is not None else None


def _atomic_rename(tmp: Path, dest: Path):
    """Flush, fsync, then rename — crash-safe atomic write."""
    fd = os.open(str(tmp), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
    os.replace(str(tmp), str(dest))


def save_validated(path: Path, model: ReverieModel, atomic: bool = True):
    """
    Save a validated model to JSON file.

    Raises:
        PersistenceFailure: the write failed.
    """
    content = model.model_dump_json(indent=2, exclude_none=False)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if atomic:
            # Per-writer tmp name so concurrent savers don't clobber each other's tmp
            tmp = path.with_suffix(f"{path.suffix}.{os.getpid()}.{id(model)}.tmp")
            tmp.write_text(content)
            _atomic_rename(tmp, path)
        else:
            path.write_text(content)
    except OSError as e:
        raise PersistenceFailure(f"write {path}: {e}") from e
