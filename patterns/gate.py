# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Insight Tier Gate — read-time redaction of derived fields.

Each insight has a view ladder, one model per visibility level:

  NightmarePattern   → AdvancedNightmarePattern → InsightNightmarePattern
  RecurringCycleView → AdvancedCycleView        → InsightCycleView
  (free / pro)         (premium)                  (vip)

redact() narrows an insight to the rung its tier allows. Lower rungs don't
declare the gated fields at all, so they are absent from the output rather
than empty. The input is never mutated; ledgers are never touched, so an
upgrade shows previously accumulated history right away.
"""

from typing import List, Sequence, Tuple, Type, TypeVar

from core.tiers import has_advanced_pattern_detection, has_psychological_insights
from patterns.schemas import (
    AdvancedCycleView, AdvancedNightmarePattern, InsightCycleView,
    InsightNightmarePattern, NightmarePattern, RecurringCycleView, ReverieModel,
)

I = TypeVar("I", bound=ReverieModel)

_LADDERS: Tuple[Tuple[Type[ReverieModel], ...], ...] = (
    (NightmarePattern, AdvancedNightmarePattern, InsightNightmarePattern),
    (RecurringCycleView, AdvancedCycleView, InsightCycleView),
)


def _ladder_for(insight: ReverieModel) -> Tuple[Type[ReverieModel], ...]:
    for ladder in _LADDERS:
        if isinstance(insight, ladder[0]):
            return ladder
    raise TypeError(f"No tier ladder for {type(insight).__name__}")


def visible_view(insight: ReverieModel, tier: str) -> Type[ReverieModel]:
    """The model class a tier is allowed to see for this insight."""
    ladder = _ladder_for(insight)
    if has_psychological_insights(tier):
        return ladder[2]
    if has_advanced_pattern_detection(tier):
        return ladder[1]
    return ladder[0]


def redact(insight: I, tier: str) -> ReverieModel:
    """Copy of insight narrowed to what tier may see."""
    view = visible_view(insight, tier)
    data = insight.model_dump(include=set(view.model_fields))
    return view.model_validate(data)


def redact_all(insights: Sequence[I], tier: str) -> List[ReverieModel]:
    return [redact(i, tier) for i in insights]
