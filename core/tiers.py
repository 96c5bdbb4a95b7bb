# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Tier System — subscription capability gating.

4 subscription tiers controlling which derived pattern fields are computed
and shown:

  free     — raw counts + static recommendations
  pro      — same pattern surface as free
  premium  — + nightmare cycle detection, recurring-dream evolution
  vip      — + narrative insights from the generative collaborator

Tiers are ordered; every check is "at least tier X". Unknown tier names
fall back to free.

Usage:
    from core.tiers import has_advanced_pattern_detection, normalize_tier

    has_advanced_pattern_detection("premium")   # True
    has_psychological_insights("premium")       # False
    normalize_tier("Gold")                      # "free"
"""

import logging
from typing import Dict

logger = logging.getLogger("reverie.tiers")

# ---------------------------------------------------------------------------
# Tier definitions
# ---------------------------------------------------------------------------

FREE = "free"
PRO = "pro"
PREMIUM = "premium"
VIP = "vip"

TIER_ORDER = (FREE, PRO, PREMIUM, VIP)

TIER_DESCRIPTIONS = {
    FREE: "Theme counts and nightmare frequency",
    PRO: "Theme counts and nightmare frequency",
    PREMIUM: "Nightmare cycles and recurring-dream evolution",
    VIP: "Everything including narrative insights",
}

_TIER_CAPABILITIES: Dict[str, Dict[str, bool]] = {
    FREE: {"advanced_pattern_detection": False, "psychological_insights": False},
    PRO: {"advanced_pattern_detection": False, "psychological_insights": False},
    PREMIUM: {"advanced_pattern_detection": True, "psychological_insights": False},
    VIP: {"advanced_pattern_detection": True, "psychological_insights": True},
}


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


def normalize_tier(tier: str) -> str:
    """Canonical tier name. Unknown or empty names resolve to free."""
    name = (tier or "").strip().lower()
    if name in _TIER_CAPABILITIES:
        return name
    logger.debug("Unknown tier %r, treating as free", tier)
    return FREE


def tier_rank(tier: str) -> int:
    """Position of a tier in TIER_ORDER (free=0 ... vip=3)."""
    return TIER_ORDER.index(normalize_tier(tier))


def tier_at_least(tier: str, minimum: str) -> bool:
    return tier_rank(tier) >= tier_rank(minimum)


def has_advanced_pattern_detection(tier: str) -> bool:
    """Nightmare cycle detection and recurring-dream evolution."""
    return _TIER_CAPABILITIES[normalize_tier(tier)]["advanced_pattern_detection"]


def has_psychological_insights(tier: str) -> bool:
    """Narrative insights from the generative collaborator (vip only)."""
    return _TIER_CAPABILITIES[normalize_tier(tier)]["psychological_insights"]


def tier_info(tier: str) -> dict:
    """Full capability view for diagnostics."""
    name = normalize_tier(tier)
    return {
        "tier": name,
        "rank": tier_rank(name),
        "description": TIER_DESCRIPTIONS[name],
        **_TIER_CAPABILITIES[name],
    }
