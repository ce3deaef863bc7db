"""Tests for pipeline configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from podcraft.errors import ProcessingError
from podcraft.models import Platform
from podcraft.pipeline.config import (
    DEFAULT_PREPROCESS_THRESHOLD,
    EvergreenSettings,
    PipelineConfig,
    PipelineConfigError,
    RetryConfig,
    create_default_config,
    load_pipeline_config,
)
from podcraft.pipeline.registry import STAGE_REGISTRY, Provider, StageKey

if TYPE_CHECKING:
    from pathlib import Path


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_defaults(self) -> None:
        config = PipelineConfig()
        assert config.preprocess_threshold_tokens == DEFAULT_PREPROCESS_THRESHOLD
        assert config.retries.generative == 1
        assert config.draft_mode == "single"
        assert config.platforms == tuple(Platform)
        assert config.usage_log is None

    def test_from_dict(self) -> None:
        config = PipelineConfig.from_dict(
            {
                "evergreen": {"podcast_name": "Deep Work Radio", "host_name": "Dana"},
                "preprocessing": {"threshold_tokens": 5000},
                "retries": {"generative": 2, "provider_attempts": 4},
                "draft_mode": "dual",
                "platforms": ["twitter", "linkedin"],
                "models": {"draft": "openai/gpt-5"},
                "usage_log": "logs/usage.jsonl",
            }
        )

        assert config.evergreen.podcast_name == "Deep Work Radio"
        assert config.preprocess_threshold_tokens == 5000
        assert config.retries == RetryConfig(generative=2, provider_attempts=4)
        assert config.draft_mode == "dual"
        assert config.platforms == (Platform.TWITTER, Platform.LINKEDIN)
        assert config.models == {"draft": "openai/gpt-5"}
        assert config.usage_log is not None
        assert config.usage_log.name == "usage.jsonl"

    def test_from_dict_rejects_unknown_stage(self) -> None:
        with pytest.raises(ValueError, match="Unknown stage"):
            PipelineConfig.from_dict({"models": {"drafting": "gpt-5"}})

    def test_rejects_unknown_override_provider(self) -> None:
        with pytest.raises(ValueError, match="models.summary: unknown provider 'ollama'"):
            PipelineConfig.from_dict({"models": {"summary": "ollama/llama3"}})

    def test_rejects_unknown_draft_mode(self) -> None:
        with pytest.raises(ValueError, match="draft_mode"):
            PipelineConfig(draft_mode="triple")  # type: ignore[arg-type]

    def test_env_draft_mode_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PODCRAFT_DRAFT_MODE", "dual")
        assert PipelineConfig().effective_draft_mode == "dual"

    def test_invalid_env_draft_mode_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PODCRAFT_DRAFT_MODE", "many")
        assert PipelineConfig().effective_draft_mode == "single"

    def test_is_enabled(self) -> None:
        config = PipelineConfig(platforms=(Platform.TWITTER,))
        assert config.is_enabled(StageKey.SOCIAL_TWITTER)
        assert not config.is_enabled(StageKey.SOCIAL_FACEBOOK)
        assert config.is_enabled(StageKey.EMAIL)


class TestResolveModel:
    """Model resolution: env, then config, then stage default."""

    def test_descriptor_default(self) -> None:
        descriptor = STAGE_REGISTRY.get(StageKey.SUMMARY)
        assert PipelineConfig().resolve_model(descriptor) == (
            descriptor.provider,
            descriptor.model,
        )

    def test_config_model_keeps_provider(self) -> None:
        descriptor = STAGE_REGISTRY.get(StageKey.DRAFT)
        config = PipelineConfig(models={"draft": "claude-opus-4"})
        assert config.resolve_model(descriptor) == (descriptor.provider, "claude-opus-4")

    def test_config_provider_and_model(self) -> None:
        descriptor = STAGE_REGISTRY.get(StageKey.DRAFT)
        config = PipelineConfig(models={"draft": "openai/gpt-5"})
        assert config.resolve_model(descriptor) == (Provider.OPENAI, "gpt-5")

    def test_env_overrides_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PODCRAFT_MODEL_DRAFT", "anthropic/claude-x")
        descriptor = STAGE_REGISTRY.get(StageKey.DRAFT)
        config = PipelineConfig(models={"draft": "openai/gpt-5"})
        assert config.resolve_model(descriptor) == (Provider.ANTHROPIC, "claude-x")


    def test_env_unknown_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PODCRAFT_MODEL_DRAFT", "mistral/large")
        descriptor = STAGE_REGISTRY.get(StageKey.DRAFT)
        with pytest.raises(ProcessingError, match="unknown provider 'mistral'") as exc_info:
            PipelineConfig().resolve_model(descriptor)
        assert exc_info.value.stage_number == 6


class TestRetryConfig:
    def test_provider_policy(self) -> None:
        policy = RetryConfig(provider_attempts=5, base_delay_seconds=1.0).provider_policy()
        assert policy.max_attempts == 5
        assert policy.initial_delay == 1.0
        assert policy.max_delay == 60.0


class TestEvergreenSettings:
    def test_variables_fill_blanks(self) -> None:
        variables = EvergreenSettings(podcast_name="Deep Work Radio").as_variables()
        assert variables["podcast_name"] == "Deep Work Radio"
        assert variables["host_name"] == "the host"
        assert variables["target_audience"] == "general listeners"


class TestLoadPipelineConfig:
    """Tests for load_pipeline_config."""

    def test_load_file(self, tmp_path: Path) -> None:
        path = tmp_path / "podcraft.yaml"
        path.write_text(
            "evergreen:\n  podcast_name: Deep Work Radio\ndraft_mode: dual\n",
            encoding="utf-8",
        )
        config = load_pipeline_config(path)
        assert config.evergreen.podcast_name == "Deep Work Radio"
        assert config.draft_mode == "dual"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PipelineConfigError, match="File not found"):
            load_pipeline_config(tmp_path / "missing.yaml")

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "podcraft.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(PipelineConfigError, match="Empty file"):
            load_pipeline_config(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "podcraft.yaml"
        path.write_text("- one\n- two\n", encoding="utf-8")
        with pytest.raises(PipelineConfigError, match="mapping"):
            load_pipeline_config(path)

    def test_invalid_values_wrapped(self, tmp_path: Path) -> None:
        path = tmp_path / "podcraft.yaml"
        path.write_text("platforms: [myspace]\n", encoding="utf-8")
        with pytest.raises(PipelineConfigError, match="myspace"):
            load_pipeline_config(path)

    def test_default_config_round_trips(self) -> None:
        data = create_default_config("Deep Work Radio", "Dana")
        config = PipelineConfig.from_dict(data)
        assert config.evergreen.host_name == "Dana"
        assert config.platforms == tuple(Platform)
        assert config.retries == RetryConfig()
