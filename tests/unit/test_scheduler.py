"""Tests for the phase scheduler and input requirements."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from podcraft.errors import ProcessingError
from podcraft.models import SummaryOutput
from podcraft.pipeline.context import ProcessingContext, StageOutputs
from podcraft.pipeline.registry import PHASE_PLAN, StageKey
from podcraft.pipeline.results import PhaseReport, PhaseStatus, StageResult
from podcraft.pipeline.runner import StageRunner
from podcraft.pipeline.scheduler import PhaseScheduler, missing_inputs
from tests.fixtures.fake_invoker import quotes_payload, summary_payload, words

if TYPE_CHECKING:
    from podcraft.pipeline.stages import StageDeps
    from tests.fixtures.fake_invoker import FakeInvoker


@pytest.fixture
def context() -> ProcessingContext:
    return ProcessingContext(run_id="run-1", raw_transcript=words(500))


@pytest.fixture
def scheduler(deps: StageDeps) -> PhaseScheduler:
    return PhaseScheduler(StageRunner(deps))


class TestMissingInputs:
    def test_lists_absent_stages(self) -> None:
        assert missing_inputs(StageKey.OUTLINE, StageOutputs()) == [
            "summary output",
            "quotes output",
        ]

    def test_optional_inputs_tolerated(self) -> None:
        assert missing_inputs(StageKey.SUMMARY, StageOutputs()) == []

    def test_empty_fields_reported(self) -> None:
        outputs = StageOutputs()
        outputs.record(
            StageResult(
                stage=StageKey.SUMMARY,
                output_data=SummaryOutput.model_construct(summary="", episode_crux="crux"),
            )
        )
        assert "summary.summary" in missing_inputs(StageKey.OUTLINE, outputs)

    def test_refined_text_required(self) -> None:
        assert "refine output" in missing_inputs(StageKey.EMAIL, StageOutputs())


@pytest.mark.asyncio
async def test_run_completes_every_phase(
    scheduler: PhaseScheduler, context: ProcessingContext
) -> None:
    reports = await scheduler.run(context)

    assert [r.name for r in reports] == [g.name for g in PHASE_PLAN]
    assert all(r.status is PhaseStatus.COMPLETED for r in reports)
    assert len(context.previous_stages) == len(StageKey)
    assert context.previous_stages[StageKey.PREPROCESS].skipped


@pytest.mark.asyncio
async def test_results_recorded_in_plan_order(
    scheduler: PhaseScheduler, context: ProcessingContext
) -> None:
    await scheduler.run(context)

    expected = [key for group in PHASE_PLAN for key in group.stages]
    assert list(context.previous_stages) == expected


@pytest.mark.asyncio
async def test_group_usage_is_parallel(
    scheduler: PhaseScheduler, context: ProcessingContext, fake_invoker: FakeInvoker
) -> None:
    reports = await scheduler.run(context)
    extract = next(r for r in reports if r.name == "extract")

    assert extract.usage.input_tokens == 2 * fake_invoker.input_tokens
    summary = context.previous_stages[StageKey.SUMMARY]
    quotes = context.previous_stages[StageKey.QUOTES]
    assert extract.usage.duration_ms == max(summary.duration_ms, quotes.duration_ms)


@pytest.mark.asyncio
async def test_failure_marks_phase_and_stops(
    scheduler: PhaseScheduler, context: ProcessingContext, fake_invoker: FakeInvoker
) -> None:
    fake_invoker.script["QuotesOutput"].append(quotes_payload(count=2))
    reports: list[PhaseReport] = []

    with pytest.raises(ProcessingError) as exc_info:
        await scheduler.run(context, reports)

    error = exc_info.value
    assert error.stage_name == "Quote Extraction"
    assert error.stage_number == 2
    assert error.run_id == "run-1"
    assert "key_quotes" in str(error)

    statuses = {r.name: r.status for r in reports}
    assert statuses["pregate"] is PhaseStatus.COMPLETED
    assert statuses["extract"] is PhaseStatus.FAILED
    assert statuses["plan"] is PhaseStatus.PENDING
    # Sibling results of a failed group are discarded
    assert StageKey.SUMMARY not in context.previous_stages
    assert "OutlineOutput" not in fake_invoker.kinds()


@pytest.mark.asyncio
async def test_missing_input_fails_before_running(
    scheduler: PhaseScheduler, context: ProcessingContext, fake_invoker: FakeInvoker
) -> None:
    plan_group = next(g for g in PHASE_PLAN if g.name == "plan")
    report = PhaseReport(name=plan_group.name, stages=plan_group.stages)
    context.previous_stages.record(
        StageResult(
            stage=StageKey.SUMMARY,
            output_data=SummaryOutput.model_validate(summary_payload()),
        )
    )

    with pytest.raises(ProcessingError, match="quotes output"):
        await scheduler.run_group(plan_group, context, report)
    assert report.status is PhaseStatus.FAILED
    assert fake_invoker.calls == []
