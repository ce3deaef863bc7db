"""Tests for the pipeline orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from podcraft.errors import ProcessingError, ValidationError
from podcraft.models import Platform
from podcraft.observability.usage import JSONLUsageMeter
from podcraft.pipeline.config import PipelineConfig
from podcraft.pipeline.orchestrator import (
    TOKEN_LIMIT_HINT,
    PipelineOrchestrator,
    describe_failure,
)
from podcraft.pipeline.registry import Provider, StageKey
from podcraft.pipeline.results import PhaseStatus
from podcraft.providers.base import ProviderError
from tests.fixtures.fake_invoker import FakeInvoker, quotes_payload, words

if TYPE_CHECKING:
    from pathlib import Path

TRANSCRIPT = words(500)


def make_orchestrator(
    invoker: FakeInvoker, config: PipelineConfig | None = None
) -> PipelineOrchestrator:
    return PipelineOrchestrator(config, invokers={provider: invoker for provider in Provider})


class TestDescribeFailure:
    def test_names_stage_and_run(self) -> None:
        error = ProcessingError(
            "too few quotes", stage_number=2, stage_name="Quote Extraction", run_id="run-1"
        )
        assert describe_failure(error) == (
            "Stage 'Quote Extraction' failed (run run-1): too few quotes"
        )

    def test_token_limit_hint(self) -> None:
        cause = ProviderError("openai", "context_length_exceeded", is_token_limit=True)
        error = ProcessingError(str(cause), stage_number=6, stage_name="Blog Draft", run_id="r")
        error.__cause__ = cause

        message = describe_failure(error)
        assert message.endswith(TOKEN_LIMIT_HINT)
        assert "context_length_exceeded" not in message

    def test_plain_error(self) -> None:
        assert describe_failure(RuntimeError("boom")) == "Pipeline failed: boom"


class TestRun:
    @pytest.mark.asyncio
    async def test_empty_transcript_rejected(self, fake_invoker: FakeInvoker) -> None:
        with pytest.raises(ValidationError, match="transcript"):
            await make_orchestrator(fake_invoker).run("   ")
        assert fake_invoker.calls == []

    @pytest.mark.asyncio
    async def test_run_produces_every_stage(self, fake_invoker: FakeInvoker) -> None:
        orchestrator = make_orchestrator(fake_invoker)
        pipeline_run = await orchestrator.run(TRANSCRIPT, run_id="run-42")
        await orchestrator.close()

        assert pipeline_run.run_id == "run-42"
        assert set(pipeline_run.results) == set(StageKey)
        assert all(r.status is PhaseStatus.COMPLETED for r in pipeline_run.phases)
        assert pipeline_run.validation_issues == {}
        # Preprocess skipped; every other stage made exactly one call
        assert len(fake_invoker.calls) == len(StageKey) - 1
        assert pipeline_run.usage.input_tokens == 100 * (len(StageKey) - 1)

    @pytest.mark.asyncio
    async def test_failure_propagates(self, fake_invoker: FakeInvoker) -> None:
        fake_invoker.script["QuotesOutput"].append(quotes_payload(count=3))
        orchestrator = make_orchestrator(fake_invoker)

        with pytest.raises(ProcessingError) as exc_info:
            await orchestrator.run(TRANSCRIPT, run_id="run-7")
        await orchestrator.close()
        assert exc_info.value.run_id == "run-7"
        assert exc_info.value.stage_name == "Quote Extraction"

    @pytest.mark.asyncio
    async def test_usage_log_written(self, fake_invoker: FakeInvoker, tmp_path: Path) -> None:
        log_path = tmp_path / "usage.jsonl"
        orchestrator = make_orchestrator(fake_invoker, PipelineConfig(usage_log=log_path))

        await orchestrator.run(TRANSCRIPT, run_id="run-9")
        await orchestrator.close()

        entries = JSONLUsageMeter(log_path).read_entries()
        assert len(entries) == len(StageKey)
        assert {e.run_id for e in entries} == {"run-9"}
        preprocess = next(e for e in entries if e.stage == "preprocess")
        assert preprocess.metadata == {"skipped": True}


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_returns_fresh_result_without_recording(
        self, fake_invoker: FakeInvoker
    ) -> None:
        orchestrator = make_orchestrator(fake_invoker)
        pipeline_run = await orchestrator.run(TRANSCRIPT)
        original = pipeline_run.results[StageKey.HEADLINES]

        fresh = await orchestrator.regenerate(5, pipeline_run.context)

        assert fresh.stage is StageKey.HEADLINES
        assert fresh is not original
        assert pipeline_run.context.previous_stages[StageKey.HEADLINES] is original

    @pytest.mark.asyncio
    async def test_platform_stage_by_number(self, fake_invoker: FakeInvoker) -> None:
        orchestrator = make_orchestrator(fake_invoker)
        pipeline_run = await orchestrator.run(TRANSCRIPT)

        fresh = await orchestrator.regenerate(8, pipeline_run.context, platform="linkedin")
        assert fresh.stage is StageKey.SOCIAL_LINKEDIN

    @pytest.mark.asyncio
    async def test_missing_inputs(self, fake_invoker: FakeInvoker) -> None:
        orchestrator = make_orchestrator(fake_invoker)
        context = orchestrator.new_context(TRANSCRIPT, run_id="run-3")

        with pytest.raises(ProcessingError, match="Missing required inputs") as exc_info:
            await orchestrator.regenerate(StageKey.DRAFT, context)
        assert exc_info.value.stage_number == 6
        assert fake_invoker.calls == []

    @pytest.mark.asyncio
    async def test_unknown_stage(self, fake_invoker: FakeInvoker) -> None:
        orchestrator = make_orchestrator(fake_invoker)
        context = orchestrator.new_context(TRANSCRIPT)
        with pytest.raises(ProcessingError, match="Invalid stage number"):
            await orchestrator.regenerate(12, context)


class TestEstimate:
    def test_short_transcript_skips_preprocess(self, fake_invoker: FakeInvoker) -> None:
        projection = make_orchestrator(fake_invoker).estimate(TRANSCRIPT)

        names = [s.stage for s in projection.stages]
        assert "preprocess" not in names
        assert names[0] == "summary"
        assert projection.total_tokens > 0
        assert projection.total_cost_usd > 0

    def test_long_transcript_includes_preprocess(self, fake_invoker: FakeInvoker) -> None:
        projection = make_orchestrator(fake_invoker).estimate("x" * 40_000)
        assert projection.stages[0].stage == "preprocess"
        # Preprocess reads the whole transcript on top of its prompt overhead
        assert projection.stages[0].input_tokens == 1500 + 10_000

    def test_disabled_platforms_excluded(self, fake_invoker: FakeInvoker) -> None:
        config = PipelineConfig(platforms=(Platform.TWITTER,))
        projection = make_orchestrator(fake_invoker, config).estimate(TRANSCRIPT)

        names = {s.stage for s in projection.stages}
        assert "social_twitter" in names
        assert "social_facebook" not in names

    def test_uses_configured_models(self, fake_invoker: FakeInvoker) -> None:
        config = PipelineConfig(models={"draft": "openai/gpt-5"})
        projection = make_orchestrator(fake_invoker, config).estimate(TRANSCRIPT)

        draft = next(s for s in projection.stages if s.stage == "draft")
        assert draft.model == "gpt-5"
