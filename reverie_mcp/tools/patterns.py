# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Dream pattern tools — analyze, nightmare summary, recurring cycles, themes, settings."""

from typing import Optional

from reverie_mcp._app import tool
from core.tiers import TIER_ORDER
from patterns.engine import (
    analyze_dream_for_patterns, get_engine,
    get_nightmare_pattern_summary, get_recurring_cycles,
)


def _bad_tier(tier: str) -> Optional[str]:
    if (tier or "").strip().lower() in TIER_ORDER:
        return None
    return f"Unknown tier '{tier}'. Use {', '.join(repr(t) for t in TIER_ORDER)}."


@tool()
def reverie_analyze_dream(dream_text: str, dream_id: str, user_id: str, tier: str = "free") -> str:
    """
    Classify a dream and fold it into the user's pattern history.

    Theme counts are always updated. Nightmares and recurring cycles are
    only tracked when the user has opted in (see reverie_settings).

    Args:
        dream_text: The dream as the user wrote it
        dream_id: Id of the saved dream
        user_id: Owner of the dream
        tier: "free", "pro", "premium", or "vip"

    Returns:
        The classified pattern
    """
    err = _bad_tier(tier)
    if err:
        return err
    pattern = analyze_dream_for_patterns(dream_text, dream_id, user_id, tier)
    lines = [f"[Dream {dream_id}] {pattern.type} (confidence {pattern.confidence:.2f})"]
    lines.append(f"Themes: {', '.join(pattern.themes) or 'none'}")
    lines.append(f"Emotions: {', '.join(pattern.emotions) or 'none'}")
    lines.append(f"Symbols: {', '.join(pattern.symbols) or 'none'}")
    return "\n".join(lines)


@tool()
def reverie_nightmares(user_id: str, tier: str = "free") -> str:
    """
    Nightmare summary for a user: frequency, intensity, common themes.

    Premium adds cycle detection; vip adds a narrative insight.

    Args:
        user_id: Whose history to summarize
        tier: "free", "pro", "premium", or "vip"

    Returns:
        Nightmare pattern report
    """
    err = _bad_tier(tier)
    if err:
        return err
    summary = get_nightmare_pattern_summary(user_id, tier)
    if summary is None:
        return f"No nightmares recorded for {user_id}."

    data = summary.model_dump()
    lines = [
        f"[Nightmares — {user_id}]",
        f"{summary.occurrence_count} recorded, {summary.frequency:.1f}/month ({summary.emotional_intensity})",
        f"Span: {summary.first_occurrence[:10]} → {summary.last_occurrence[:10]}",
    ]
    if summary.common_themes:
        lines.append("\nCommon themes:")
        for t in summary.common_themes:
            lines.append(f"  {t.theme}: {t.count}")

    stats = data.get("cycle_statistics")
    if stats and stats.get("status") == "computed":
        lines.append(
            f"\nCycle: every {stats['average_interval_days']:.1f} days "
            f"(±{stats['std_dev_days']:.1f}, {'consistent' if stats['consistent'] else 'irregular'})"
        )
    for trigger in data.get("trigger_patterns") or []:
        lines.append(f"  {trigger}")
    if data.get("narrative_insight"):
        lines.append(f"\nInsight: {data['narrative_insight']}")

    lines.append("\nCoping:")
    for rec in summary.coping_recommendations:
        lines.append(f"  - {rec}")
    return "\n".join(lines)


@tool()
def reverie_cycles(user_id: str, tier: str = "free") -> str:
    """
    Recurring dream cycles for a user, in the order they were found.

    Args:
        user_id: Whose cycles to list
        tier: "free", "pro", "premium", or "vip"

    Returns:
        One block per cycle
    """
    err = _bad_tier(tier)
    if err:
        return err
    cycles = get_recurring_cycles(user_id, tier)
    if not cycles:
        return f"No recurring cycles for {user_id}."

    lines = [f"[Recurring cycles — {user_id}] {len(cycles)} found", ""]
    for view in cycles:
        data = view.model_dump()
        lines.append(f"  {view.cycle_id}: {', '.join(view.common_elements)}")
        lines.append(
            f"     {view.occurrence_count}x, every {view.average_interval_days:.1f} days | "
            f"{view.first_occurrence[:10]} → {view.last_occurrence[:10]}"
        )
        evolution = data.get("evolution")
        if evolution:
            changes = []
            if evolution["new_elements"]:
                changes.append(f"+{', +'.join(evolution['new_elements'])}")
            if evolution["dropped_elements"]:
                changes.append(f"-{', -'.join(evolution['dropped_elements'])}")
            lines.append(f"     {evolution['stability']}" + (f" ({'; '.join(changes)})" if changes else ""))
        if data.get("narrative_insight"):
            lines.append(f"     {data['narrative_insight']}")
        lines.append("")
    return "\n".join(lines).rstrip()


@tool()
def reverie_themes(user_id: str, n: int = 10) -> str:
    """
    Most frequent dream themes for a user.

    Args:
        user_id: Whose themes to list
        n: How many to show (default 10)

    Returns:
        Themes with counts
    """
    counters = get_engine().themes.list_theme_counts(user_id, limit=n)
    if not counters:
        return f"No themes recorded for {user_id}."
    lines = [f"[Themes — {user_id}]"]
    for c in counters:
        last = (c.last_occurred or "?")[:10]
        lines.append(f"  {c.theme}: {c.count} (last {last})")
    return "\n".join(lines)


@tool()
def reverie_settings(
    user_id: str,
    action: str = "show",
    nightmare_tracking: Optional[bool] = None,
    recurring_dreams: Optional[bool] = None,
) -> str:
    """
    Show or change a user's pattern-tracking opt-ins.

    Args:
        user_id: Whose settings
        action: "show" or "set"
        nightmare_tracking: For set: track nightmare history
        recurring_dreams: For set: cluster recurring dreams

    Returns:
        Current settings
    """
    store = get_engine().settings
    if action == "set":
        settings = store.update(user_id, nightmare_tracking=nightmare_tracking,
                                recurring_dreams=recurring_dreams)
    elif action == "show":
        settings = store.get(user_id)
    else:
        return f"Unknown action '{action}'. Use 'show' or 'set'."

    def _flag(on: bool) -> str:
        return "on" if on else "off"

    return (
        f"[Settings — {user_id}]\n"
        f"Nightmare tracking: {_flag(settings.nightmare_tracking)}\n"
        f"Recurring dreams: {_flag(settings.recurring_dreams)}"
    )
