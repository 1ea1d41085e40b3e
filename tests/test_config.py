"""Tests for configuration schema and loader."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from layerctx.config.loader import (
    camel_to_snake,
    convert_keys,
    convert_to_camel,
    load_config,
    save_config,
    snake_to_camel,
)
from layerctx.config.schema import Config, EscalationThresholds, LayeredContextConfig


class TestLayeredContextConfig:
    def test_defaults(self):
        config = LayeredContextConfig()
        assert config.enable_session_compression is True
        assert config.max_prompt_tokens == 32000
        assert config.max_recent_messages == 24
        assert config.max_archives == 12
        assert config.archive_chunk_size == 8
        assert config.l0_target_tokens == 120
        assert config.l1_target_tokens == 1200
        assert config.escalation == EscalationThresholds()

    def test_escalation_defaults(self):
        esc = EscalationThresholds()
        assert esc.score_threshold_high == 0.64
        assert esc.l2_relevance_threshold == 0.25
        assert esc.min_relevance == 0.05
        assert esc.max_items_for_l1 == 4
        assert esc.max_items_for_l2 == 2

    @pytest.mark.parametrize("field", [
        "max_prompt_tokens", "max_recent_messages", "max_archives", "archive_chunk_size",
    ])
    def test_non_positive_limits_rejected(self, field):
        with pytest.raises(ValidationError):
            LayeredContextConfig(**{field: 0})

    def test_abstract_longer_than_summary_rejected(self):
        with pytest.raises(ValidationError):
            LayeredContextConfig(l0_target_tokens=500, l1_target_tokens=100)

    def test_threshold_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            EscalationThresholds(score_threshold_high=1.5)

    def test_frozen(self):
        config = LayeredContextConfig()
        with pytest.raises(ValidationError):
            config.max_archives = 3


class TestKeyConversion:
    def test_camel_to_snake(self):
        assert camel_to_snake("maxPromptTokens") == "max_prompt_tokens"
        assert camel_to_snake("l0TargetTokens") == "l0_target_tokens"
        assert camel_to_snake("already_snake") == "already_snake"

    def test_snake_to_camel(self):
        assert snake_to_camel("max_prompt_tokens") == "maxPromptTokens"
        assert snake_to_camel("mode") == "mode"

    def test_nested(self):
        data = {"context": {"maxArchives": 3}, "providers": {"openai": {"apiKey": "k"}}}
        converted = convert_keys(data)
        assert converted == {"context": {"max_archives": 3}, "providers": {"openai": {"api_key": "k"}}}
        assert convert_to_camel(converted) == data


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.json")
        assert config.context == LayeredContextConfig()
        assert config.storage.persist is False

    def test_camel_case_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "context": {"maxPromptTokens": 4000, "escalation": {"maxItemsForL2": 1}},
            "scoring": {"mode": "dense"},
        }))

        config = load_config(path)

        assert config.context.max_prompt_tokens == 4000
        assert config.context.escalation.max_items_for_l2 == 1
        assert config.scoring.mode == "dense"

    def test_invalid_json_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{broken")
        assert load_config(path).context == LayeredContextConfig()

    def test_invalid_values_give_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"context": {"archiveChunkSize": 0}}))
        assert load_config(path).context.archive_chunk_size == 8

    def test_save_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config = Config(context={"max_archives": 5}, storage={"persist": True, "path": str(tmp_path)})

        save_config(config, path)

        raw = json.loads(path.read_text())
        assert raw["context"]["maxArchives"] == 5
        loaded = load_config(path)
        assert loaded.context.max_archives == 5
        assert loaded.storage.persist is True

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LAYERCTX_SCORING__MODE", "dense")
        config = load_config(tmp_path / "nope.json")
        assert config.scoring.mode == "dense"


class TestRootConfig:
    def test_storage_path_disabled_by_default(self):
        assert Config().storage_path is None

    def test_storage_path_expanded(self):
        config = Config(storage={"persist": True, "path": "~/archives"})
        assert config.storage_path == Path.home() / "archives"

    def test_api_key_by_model_prefix(self):
        config = Config(providers={"anthropic": {"api_key": "a"}, "openai": {"api_key": "o"}})
        assert config.get_api_key("openai/text-embedding-3-small") == "o"
        assert config.get_api_key("anthropic/claude-haiku-4-5") == "a"

    def test_api_key_falls_back_to_first_configured(self):
        config = Config(providers={"gemini": {"api_key": "g"}})
        assert config.get_api_key("text-embedding-3-small") == "g"
        assert Config().get_api_key() is None

    def test_api_base(self):
        config = Config(providers={"openai": {"api_base": "http://localhost:4000"}})
        assert config.get_api_base() == "http://localhost:4000"
