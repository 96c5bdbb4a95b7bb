# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""MCP tool handlers — raw sync functions from the registry, async wrappers."""

import asyncio

import pytest

import reverie_mcp.tools.patterns  # noqa: F401  registers tools
from reverie_mcp._app import _TOOL_REGISTRY, get_tool
from patterns import engine as engine_mod
from patterns.classifier import PatternClassifier
from patterns.engine import PatternEngine

TOOLS = ("reverie_analyze_dream", "reverie_nightmares", "reverie_cycles",
         "reverie_themes", "reverie_settings")


@pytest.fixture
def install_engine(clock, scripted, reply):
    def _install(**classification):
        engine = PatternEngine(PatternClassifier(scripted(reply(**classification))), clock=clock)
        engine_mod.set_engine(engine)
        return engine
    yield _install
    engine_mod.set_engine(None)


class TestRegistry:

    def test_all_tools_registered(self):
        for name in TOOLS:
            assert name in _TOOL_REGISTRY

    def test_registry_holds_sync_functions(self):
        for name in TOOLS:
            assert not asyncio.iscoroutinefunction(_TOOL_REGISTRY[name])

    def test_module_names_are_async_wrappers(self):
        assert asyncio.iscoroutinefunction(reverie_mcp.tools.patterns.reverie_themes)


class TestTools:

    def test_analyze_reports_pattern(self, install_engine):
        install_engine(type="nightmare", themes=["chase"], emotions=["fear"], confidence=0.8)
        out = get_tool("reverie_analyze_dream")(dream_text="chased", dream_id="d1", user_id="u1")
        assert "nightmare (confidence 0.80)" in out
        assert "Themes: chase" in out

    def test_unknown_tier_rejected(self, install_engine):
        install_engine()
        out = get_tool("reverie_nightmares")(user_id="u1", tier="gold")
        assert out.startswith("Unknown tier 'gold'")

    def test_settings_then_nightmares(self, install_engine, clock):
        install_engine(type="nightmare", themes=["chase"], confidence=0.5)
        out = get_tool("reverie_settings")(user_id="u1", action="set", nightmare_tracking=True)
        assert "Nightmare tracking: on" in out
        assert "Recurring dreams: off" in out

        for i in range(3):
            clock.advance(days=7)
            get_tool("reverie_analyze_dream")(dream_text="chased", dream_id=f"d{i}",
                                              user_id="u1", tier="premium")

        free = get_tool("reverie_nightmares")(user_id="u1", tier="free")
        assert "3 recorded, 3.0/month (high)" in free
        assert "Cycle:" not in free

        premium = get_tool("reverie_nightmares")(user_id="u1", tier="premium")
        assert "Cycle: every 7.0 days" in premium
        assert "roughly a 7-day cycle" in premium

    def test_cycles_report(self, install_engine, clock):
        install_engine(type="recurring", themes=["water"], symbols=["boat"], confidence=0.6)
        get_tool("reverie_settings")(user_id="u1", action="set", recurring_dreams=True)
        for i in range(2):
            clock.advance(days=4)
            get_tool("reverie_analyze_dream")(dream_text="the lake", dream_id=f"d{i}", user_id="u1")
        out = get_tool("reverie_cycles")(user_id="u1")
        assert "1 found" in out
        assert "water, boat" in out
        assert "2x, every 4.0 days" in out

    def test_empty_reports(self, install_engine):
        install_engine()
        assert get_tool("reverie_nightmares")(user_id="u1") == "No nightmares recorded for u1."
        assert get_tool("reverie_cycles")(user_id="u1") == "No recurring cycles for u1."
        assert get_tool("reverie_themes")(user_id="u1") == "No themes recorded for u1."

    def test_themes_report(self, install_engine):
        install_engine(themes=["Flying"], confidence=0.1)
        get_tool("reverie_analyze_dream")(dream_text="up", dream_id="d1", user_id="u1")
        assert "Flying: 1" in get_tool("reverie_themes")(user_id="u1")

    def test_settings_bad_action(self, install_engine):
        install_engine()
        assert get_tool("reverie_settings")(user_id="u1", action="reset").startswith("Unknown action")

    def test_async_wrapper_runs_handler(self, install_engine):
        install_engine()
        out = asyncio.run(reverie_mcp.tools.patterns.reverie_settings(user_id="u1"))
        assert "Nightmare tracking: off" in out
