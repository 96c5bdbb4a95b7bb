# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Config loading and paths — defaults, file, env overrides."""

import json

from core.config import get_config, load_config, reset_config
from core.paths import ReveriePaths, get_paths, safe_component


class TestConfig:

    def test_defaults(self):
        config = load_config()
        assert config.ollama_url == "http://localhost:11434"
        assert config.classifier_model == "mistral:7b"
        assert config.classifier_timeout == 30

    def test_file_overrides_defaults(self, isolated_paths):
        isolated_paths.config_file.write_text(json.dumps({"narrative_model": "llama3:8b"}))
        assert load_config().narrative_model == "llama3:8b"

    def test_env_overrides_file(self, isolated_paths, monkeypatch):
        isolated_paths.config_file.write_text(json.dumps({"classifier_timeout": 10}))
        monkeypatch.setenv("REVERIE_CLASSIFIER_TIMEOUT", "5")
        assert load_config().classifier_timeout == 5.0

    def test_broken_file_ignored(self, isolated_paths):
        isolated_paths.config_file.write_text("{nope")
        assert load_config().classifier_model == "mistral:7b"

    def test_bad_env_value_ignored(self, monkeypatch):
        monkeypatch.setenv("REVERIE_NARRATIVE_TIMEOUT", "soon")
        assert load_config().narrative_timeout == 45

    def test_out_of_range_file_value_uses_default(self, isolated_paths):
        isolated_paths.config_file.write_text(json.dumps({"classifier_timeout": 0, "narrative_model": "phi3"}))
        config = load_config()
        assert config.classifier_timeout == 30
        assert config.narrative_model == "phi3"

    def test_out_of_range_env_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("REVERIE_CLASSIFIER_TIMEOUT", "-1")
        assert load_config().classifier_timeout == 30

    def test_token_limit_env_overrides(self, monkeypatch):
        monkeypatch.setenv("REVERIE_CLASSIFIER_MAX_TOKENS", "250")
        monkeypatch.setenv("REVERIE_NARRATIVE_MAX_TOKENS", "many")
        config = load_config()
        assert config.classifier_max_tokens == 250
        assert config.narrative_max_tokens == 200

    def test_cached_until_reset(self, isolated_paths):
        first = get_config()
        isolated_paths.config_file.write_text(json.dumps({"classifier_model": "phi3"}))
        assert get_config() is first
        reset_config()
        assert get_config().classifier_model == "phi3"


class TestPaths:

    def test_configured_root(self, isolated_paths, tmp_path):
        assert get_paths() is isolated_paths
        assert isolated_paths.theme_file("u1", "falling") == tmp_path / "themes" / "u1" / "falling.json"
        assert isolated_paths.ledger_dir("nightmares", "u1") == tmp_path / "nightmares" / "u1"

    def test_env_root(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REVERIE_DATA_DIR", str(tmp_path / "elsewhere"))
        assert ReveriePaths().data_dir == tmp_path / "elsewhere"

    def test_safe_component(self):
        assert safe_component("user-42") == "user-42"
        cleaned = safe_component("a/b")
        assert "/" not in cleaned
        assert cleaned != safe_component("a_b")
