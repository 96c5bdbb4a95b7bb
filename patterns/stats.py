# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Cycle Statistics — periodicity of occurrence timestamps.

Pure functions: timestamps in, statistics out. No I/O, no collaborators.

Used by: nightmares (cached cycle analysis + summary reads),
cycles (recurring cycle views).
"""

import math
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union

from patterns.schemas import CycleStatistics

MIN_CYCLE_OCCURRENCES = 3
CONSISTENCY_RATIO = 0.5  # consistent when std dev < 50% of the mean interval
SECONDS_PER_DAY = 86400

Timestamp = Union[str, datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted to it."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Timestamp) -> datetime:
    """
    Accept datetimes or ISO-8601 strings (a trailing Z is allowed).

    Always returns an aware UTC datetime, so stamps written with and
    without an offset stay comparable.
    """
    if isinstance(value, datetime):
        return to_utc(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def interval_days(earlier: Timestamp, later: Timestamp) -> int:
    """Whole days between two timestamps (floor of the difference)."""
    delta = parse_timestamp(later) - parse_timestamp(earlier)
    return math.floor(delta.total_seconds() / SECONDS_PER_DAY)


def intervals(timestamps: Sequence[Timestamp]) -> List[int]:
    """Consecutive-pair intervals in whole days."""
    return [interval_days(a, b) for a, b in zip(timestamps, timestamps[1:])]


def average_interval_days(timestamps: Sequence[Timestamp]) -> float:
    """Mean consecutive interval. 0.0 with fewer than two timestamps."""
    gaps = intervals(timestamps)
    if not gaps:
        return 0.0
    return sum(gaps) / len(gaps)


def compute_cycle_statistics(timestamps: Sequence[Timestamp]) -> CycleStatistics:
    """
    Periodicity statistics for an ordered series of occurrences.

    Fewer than MIN_CYCLE_OCCURRENCES timestamps → status="insufficient".
    Otherwise mean / population std dev of the whole-day intervals, and
    consistent = std_dev < CONSISTENCY_RATIO * mean.
    """
    if len(timestamps) < MIN_CYCLE_OCCURRENCES:
        return CycleStatistics(status="insufficient")

    gaps = intervals(timestamps)
    mean = sum(gaps) / len(gaps)
    variance = sum((g - mean) ** 2 for g in gaps) / len(gaps)
    std_dev = math.sqrt(variance)

    return CycleStatistics(
        status="computed",
        average_interval_days=mean,
        std_dev_days=std_dev,
        consistent=std_dev < CONSISTENCY_RATIO * mean,
    )


def describe_cycle(stats: CycleStatistics, subject: str = "Nightmares") -> Optional[str]:
    """Templated recommendation for presentation. None when insufficient."""
    if stats.status != "computed":
        return None
    if stats.consistent:
        return (
            f"{subject} appear to follow roughly a {stats.average_interval_days:.0f}-day cycle. "
            f"Consider tracking potential triggers during this timeframe."
        )
    return "No clear cycle detected yet. Continue tracking to identify patterns."
