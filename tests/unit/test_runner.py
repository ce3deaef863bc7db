"""Tests for the single-stage runner."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from podcraft.errors import ProcessingError, ValidationError
from podcraft.pipeline.context import ProcessingContext
from podcraft.pipeline.registry import StageKey
from podcraft.pipeline.results import StageResult
from podcraft.pipeline.runner import StageRunner
from tests.fixtures.fake_invoker import words

if TYPE_CHECKING:
    from collections.abc import Callable

    from podcraft.observability.usage import UsageRecord
    from podcraft.pipeline.registry import StageDescriptor
    from podcraft.pipeline.stages import StageDeps, StageHandler


class RecordingMeter:
    def __init__(self) -> None:
        self.records: list[UsageRecord] = []

    async def record(self, entry: UsageRecord) -> None:
        self.records.append(entry)


class FailingMeter:
    async def record(self, entry: UsageRecord) -> None:  # noqa: ARG002
        raise OSError("disk full")


def _clock(*ticks: float) -> Callable[[], float]:
    return iter(ticks).__next__


def _handler(
    result: StageResult | None = None, error: Exception | None = None
) -> StageHandler:
    async def handler(
        stage: StageDescriptor, context: ProcessingContext, deps: StageDeps
    ) -> StageResult:
        if error is not None:
            raise error
        assert result is not None
        return result

    return handler


@pytest.fixture
def context() -> ProcessingContext:
    return ProcessingContext(run_id="run-1", raw_transcript=words(200))


@pytest.mark.asyncio
async def test_run_normalizes_and_times(deps: StageDeps, context: ProcessingContext) -> None:
    meter = RecordingMeter()
    result = StageResult(stage=StageKey.OUTLINE, output_text="plan", input_tokens=7, duration_ms=1)
    runner = StageRunner(
        replace(deps, usage_meter=meter),
        handlers={StageKey.OUTLINE: _handler(result)},
        clock=_clock(10.0, 10.25),
    )

    outcome = await runner.run(StageKey.OUTLINE, context)
    await runner.aclose()

    assert outcome.duration_ms == 250
    assert outcome.input_tokens == 7
    assert outcome.validation_issues == []
    assert len(meter.records) == 1
    record = meter.records[0]
    assert record.stage == "outline"
    assert record.run_id == "run-1"
    assert record.success
    assert record.latency_ms == 250


@pytest.mark.asyncio
async def test_run_does_not_record_into_context(
    deps: StageDeps, context: ProcessingContext
) -> None:
    result = StageResult(stage=StageKey.OUTLINE, output_text="plan")
    runner = StageRunner(deps, handlers={StageKey.OUTLINE: _handler(result)})

    await runner.run("outline", context)
    assert StageKey.OUTLINE not in context.previous_stages


@pytest.mark.asyncio
async def test_unknown_stage(deps: StageDeps, context: ProcessingContext) -> None:
    runner = StageRunner(deps)
    with pytest.raises(ProcessingError, match="Unknown stage") as exc_info:
        await runner.run("podcast_art", context)
    assert exc_info.value.run_id == "run-1"


@pytest.mark.asyncio
async def test_platform_stage_number_needs_platform(
    deps: StageDeps, context: ProcessingContext
) -> None:
    runner = StageRunner(deps)
    with pytest.raises(ProcessingError, match="requires a platform"):
        await runner.run(8, context)


@pytest.mark.asyncio
async def test_unexpected_error_wrapped_once(deps: StageDeps, context: ProcessingContext) -> None:
    meter = RecordingMeter()
    runner = StageRunner(
        replace(deps, usage_meter=meter),
        handlers={StageKey.HEADLINES: _handler(error=KeyError("hooks"))},
    )

    with pytest.raises(ProcessingError) as exc_info:
        await runner.run(StageKey.HEADLINES, context)
    await runner.aclose()

    error = exc_info.value
    assert error.stage_number == 5
    assert error.stage_name == "Headlines"
    assert error.run_id == "run-1"
    assert isinstance(error.__cause__, KeyError)
    assert not meter.records[0].success
    assert meter.records[0].error == "'hooks'"


@pytest.mark.asyncio
async def test_domain_error_passes_through(deps: StageDeps, context: ProcessingContext) -> None:
    runner = StageRunner(
        deps,
        handlers={StageKey.QUOTES: _handler(error=ValidationError("key_quotes", "too few"))},
    )
    with pytest.raises(ValidationError, match="key_quotes"):
        await runner.run(StageKey.QUOTES, context)


@pytest.mark.asyncio
async def test_result_for_wrong_stage(deps: StageDeps, context: ProcessingContext) -> None:
    result = StageResult(stage=StageKey.DRAFT, output_text="draft")
    runner = StageRunner(deps, handlers={StageKey.REFINE: _handler(result)})
    with pytest.raises(ProcessingError, match="returned a result for"):
        await runner.run(StageKey.REFINE, context)


@pytest.mark.asyncio
async def test_meter_failure_never_reaches_stage(
    deps: StageDeps, context: ProcessingContext
) -> None:
    result = StageResult(stage=StageKey.OUTLINE, output_text="plan")
    runner = StageRunner(
        replace(deps, usage_meter=FailingMeter()),
        handlers={StageKey.OUTLINE: _handler(result)},
    )

    outcome = await runner.run(StageKey.OUTLINE, context)
    await runner.aclose()
    assert outcome.output_text == "plan"


@pytest.mark.asyncio
async def test_metering_does_not_delay_result(deps: StageDeps, context: ProcessingContext) -> None:
    release = asyncio.Event()

    class SlowMeter:
        def __init__(self) -> None:
            self.done = False

        async def record(self, entry: UsageRecord) -> None:  # noqa: ARG002
            await release.wait()
            self.done = True

    meter = SlowMeter()
    result = StageResult(stage=StageKey.OUTLINE, output_text="plan")
    runner = StageRunner(
        replace(deps, usage_meter=meter),
        handlers={StageKey.OUTLINE: _handler(result)},
    )

    await runner.run(StageKey.OUTLINE, context)
    assert not meter.done

    release.set()
    await runner.aclose()
    assert meter.done


@pytest.mark.asyncio
async def test_unknown_provider_override_fails_before_handler(
    deps: StageDeps, context: ProcessingContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PODCRAFT_MODEL_SUMMARY", "ollama/llama3")
    meter = RecordingMeter()
    calls: list[StageKey] = []

    async def handler(
        stage: StageDescriptor, context: ProcessingContext, deps: StageDeps
    ) -> StageResult:
        calls.append(stage.key)
        raise KeyError("unreachable")

    runner = StageRunner(
        replace(deps, usage_meter=meter), handlers={StageKey.SUMMARY: handler}
    )

    with pytest.raises(ProcessingError, match="unknown provider 'ollama'") as exc_info:
        await runner.run(StageKey.SUMMARY, context)
    await runner.aclose()

    assert exc_info.value.stage_number == 1
    assert exc_info.value.run_id == "run-1"
    assert calls == []
    assert meter.records == []


@pytest.mark.asyncio
async def test_failure_record_names_resolved_model(
    deps: StageDeps, context: ProcessingContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("PODCRAFT_MODEL_HEADLINES", "openai/gpt-5-mini")
    meter = RecordingMeter()
    runner = StageRunner(
        replace(deps, usage_meter=meter),
        handlers={StageKey.HEADLINES: _handler(error=RuntimeError("boom"))},
    )

    with pytest.raises(ProcessingError, match="boom"):
        await runner.run(StageKey.HEADLINES, context)
    await runner.aclose()

    assert meter.records[0].provider == "openai"
    assert meter.records[0].model == "gpt-5-mini"
    assert not meter.records[0].success
