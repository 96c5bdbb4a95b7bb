# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Nightmare history — ledger writes, summary math, tier gating."""

from datetime import datetime, timedelta, timezone

import pytest

from patterns.events import bus, Events
from patterns.narrative import NarrativeInsightGenerator
from patterns.nightmares import (
    COPING_RECOMMENDATIONS, NightmareHistoryAggregator, intensity_bucket,
)
from patterns.schemas import (
    AdvancedNightmarePattern, DreamPattern, InsightNightmarePattern, NightmarePattern,
)
from patterns.settings import SettingsStore


def nightmare(*themes, emotions=("fear",)):
    return DreamPattern(type="nightmare", themes=list(themes), emotions=list(emotions),
                        symbols=[], confidence=0.9)


@pytest.fixture
def opted_in():
    SettingsStore().update("u1", nightmare_tracking=True)
    return "u1"


@pytest.fixture
def aggregator(clock):
    return NightmareHistoryAggregator(clock=clock)


def record_series(aggregator, clock, tier, days, themes=("chase",)):
    for i, gap in enumerate(days):
        clock.advance(days=gap)
        aggregator.record_nightmare_occurrence("u1", f"d{i}", nightmare(*themes), tier)


class TestIntensity:

    @pytest.mark.parametrize("per_month,bucket", [
        (0.0, "low"), (0.99, "low"), (1.0, "moderate"), (1.99, "moderate"),
        (2.0, "high"), (3.99, "high"), (4.0, "severe"), (12, "severe"),
    ])
    def test_buckets(self, per_month, bucket):
        assert intensity_bucket(per_month) == bucket


class TestRecord:

    def test_requires_opt_in(self, aggregator):
        assert aggregator.record_nightmare_occurrence("u1", "d1", nightmare("x"), "vip") is None
        assert not aggregator.ledger.exists("u1")

    def test_tallies(self, aggregator, opted_in, clock):
        aggregator.record_nightmare_occurrence("u1", "d1", nightmare("chase", "dark"), "free")
        clock.advance(days=1)
        history = aggregator.record_nightmare_occurrence(
            "u1", "d2", nightmare("chase", emotions=("fear", "panic")), "free")
        assert [o.dream_id for o in history.occurrences] == ["d1", "d2"]
        assert history.theme_counts == {"chase": 2, "dark": 1}
        assert history.emotion_counts == {"fear": 2, "panic": 1}

    def test_free_tier_caches_no_analysis(self, aggregator, opted_in, clock):
        record_series(aggregator, clock, "free", [0, 7, 7])
        assert aggregator.ledger.load("u1").cycle_analysis is None

    def test_premium_caches_analysis(self, aggregator, opted_in, clock):
        record_series(aggregator, clock, "premium", [0, 7, 7])
        analysis = aggregator.ledger.load("u1").cycle_analysis
        assert analysis.statistics.status == "computed"
        assert analysis.statistics.consistent is True
        assert analysis.total_occurrences == 3
        assert "7-day cycle" in analysis.recommendation

    def test_out_of_order_timestamp_sorted(self, aggregator, opted_in, clock):
        aggregator.record_nightmare_occurrence("u1", "late", nightmare("x"), "free")
        earlier = clock.now - timedelta(days=3)
        history = aggregator.record_nightmare_occurrence(
            "u1", "early", nightmare("x"), "free", timestamp=earlier)
        assert [o.dream_id for o in history.occurrences] == ["early", "late"]

    def test_mixed_offset_timestamps_stay_readable(self, aggregator, opted_in, clock):
        aware = datetime(2025, 12, 29, 8, 0, tzinfo=timezone.utc)
        aggregator.record_nightmare_occurrence("u1", "aware", nightmare("x"), "premium", timestamp=aware)
        aggregator.record_nightmare_occurrence("u1", "naive", nightmare("x"), "premium")
        history = aggregator.ledger.rebuild("u1")
        assert [o.dream_id for o in history.occurrences] == ["aware", "naive"]
        assert all(o.timestamp.endswith("+00:00") for o in history.occurrences)
        assert aggregator.get_nightmare_pattern_summary("u1", "premium").occurrence_count == 2

    def test_emits_recorded(self, aggregator, opted_in):
        aggregator.record_nightmare_occurrence("u1", "d1", nightmare("x"), "free")
        assert bus.history(Events.NIGHTMARE_RECORDED)[-1]["data"]["total"] == 1


class TestSummary:

    def test_none_without_history(self, aggregator):
        assert aggregator.get_nightmare_pattern_summary("u1", "vip") is None

    def test_weekly_nightmares_premium(self, aggregator, opted_in, clock):
        record_series(aggregator, clock, "premium", [0, 7, 7])
        summary = aggregator.get_nightmare_pattern_summary("u1", "premium")

        assert type(summary) is AdvancedNightmarePattern
        assert summary.occurrence_count == 3
        assert summary.frequency == pytest.approx(3.0)  # 14-day span < one month
        assert summary.emotional_intensity == "high"
        assert summary.common_themes[0].theme == "chase"
        assert summary.common_themes[0].count == 3
        assert summary.coping_recommendations == list(COPING_RECOMMENDATIONS)
        assert summary.cycle_statistics.average_interval_days == 7
        assert summary.cycle_statistics.consistent is True
        assert "roughly a 7-day cycle" in summary.trigger_patterns[0]

    @pytest.mark.parametrize("count,gap,bucket", [
        (2, 90, "low"),        # 2 over 3 months
        (3, 30, "moderate"),   # 3 over 2 months
        (5, 2, "severe"),      # 5 in 8 days
    ])
    def test_frequency_buckets(self, aggregator, opted_in, clock, count, gap, bucket):
        record_series(aggregator, clock, "free", [gap] * count)
        assert aggregator.get_nightmare_pattern_summary("u1", "free").emotional_intensity == bucket

    def test_top_five_themes(self, aggregator, opted_in, clock):
        for i, themes in enumerate([("a", "b", "c"), ("a", "d", "e"), ("a", "f", "b")]):
            clock.advance(days=1)
            aggregator.record_nightmare_occurrence("u1", f"d{i}", nightmare(*themes), "free")
        summary = aggregator.get_nightmare_pattern_summary("u1", "free")
        assert len(summary.common_themes) == 5
        assert [t.theme for t in summary.common_themes[:2]] == ["a", "b"]

    def test_free_hides_premium_history(self, aggregator, opted_in, clock):
        record_series(aggregator, clock, "premium", [0, 7, 7])
        summary = aggregator.get_nightmare_pattern_summary("u1", "free")
        assert type(summary) is NightmarePattern
        dumped = summary.model_dump()
        assert "cycle_statistics" not in dumped
        assert "trigger_patterns" not in dumped
        assert "narrative_insight" not in dumped

    def test_upgrade_sees_cycles_from_free_history(self, aggregator, opted_in, clock):
        record_series(aggregator, clock, "free", [0, 7, 7])
        summary = aggregator.get_nightmare_pattern_summary("u1", "premium")
        assert summary.cycle_statistics.status == "computed"

    def test_insufficient_history_has_no_trigger(self, aggregator, opted_in, clock):
        record_series(aggregator, clock, "premium", [0, 7])
        summary = aggregator.get_nightmare_pattern_summary("u1", "premium")
        assert summary.cycle_statistics.status == "insufficient"
        assert summary.trigger_patterns is None


class TestNarrative:

    def test_vip_narrative_after_five(self, clock, opted_in, scripted):
        narrator_call = scripted({"response": "This could suggest stress around deadlines."})
        aggregator = NightmareHistoryAggregator(
            narrator=NarrativeInsightGenerator(narrator_call), clock=clock)

        record_series(aggregator, clock, "vip", [0, 7, 7, 7])
        assert narrator_call.prompts == []

        record_series(aggregator, clock, "vip", [7])
        assert len(narrator_call.prompts) == 1
        assert "Total occurrences: 5" in narrator_call.prompts[0]

        summary = aggregator.get_nightmare_pattern_summary("u1", "vip")
        assert type(summary) is InsightNightmarePattern
        assert summary.narrative_insight == "This could suggest stress around deadlines."

    def test_premium_never_calls_narrator(self, clock, opted_in, scripted):
        narrator_call = scripted({"response": "text"})
        aggregator = NightmareHistoryAggregator(
            narrator=NarrativeInsightGenerator(narrator_call), clock=clock)
        record_series(aggregator, clock, "premium", [0, 7, 7, 7, 7, 7])
        assert narrator_call.prompts == []
        assert "narrative_insight" not in aggregator.get_nightmare_pattern_summary(
            "u1", "premium").model_dump()

    def test_narrator_failure_is_absent_insight(self, clock, opted_in, scripted):
        aggregator = NightmareHistoryAggregator(
            narrator=NarrativeInsightGenerator(scripted(TimeoutError("slow"))), clock=clock)
        record_series(aggregator, clock, "vip", [0, 7, 7, 7, 7])
        assert aggregator.get_nightmare_pattern_summary("u1", "vip").narrative_insight is None
