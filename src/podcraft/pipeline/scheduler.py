"""Phase scheduler: run phase groups in order, stages within a group together.

Each group moves ``pending -> running -> completed | failed``. A group
starts only after its predecessor completed. Its stages are fanned out
concurrently; the first failure fails the group and the run, and results
of siblings still in flight are discarded. Results of a completed group
are recorded into the context in plan order.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

from podcraft.errors import PodcraftError, ProcessingError
from podcraft.observability.logging import get_logger
from podcraft.pipeline.batching import fan_out
from podcraft.pipeline.registry import PHASE_PLAN, SOCIAL_STAGES, StageKey
from podcraft.pipeline.results import PhaseReport, PhaseStatus

if TYPE_CHECKING:
    from podcraft.pipeline.context import ProcessingContext, StageOutputs
    from podcraft.pipeline.registry import PhaseGroup
    from podcraft.pipeline.results import StageResult
    from podcraft.pipeline.runner import StageRunner

log = get_logger(__name__)


@dataclass(frozen=True)
class InputRequirement:
    """Prior output a stage reads.

    Attributes:
        stage: Stage whose result is read.
        fields: Attributes of its structured output that must be non-empty.
        text: The stage's free-text output must be present.
        required: When False a missing input is logged and tolerated.
    """

    stage: StageKey
    fields: tuple[str, ...] = ()
    text: bool = False
    required: bool = True


_SUMMARY = InputRequirement(StageKey.SUMMARY, ("summary", "episode_crux"))
_QUOTES = InputRequirement(StageKey.QUOTES, ("key_quotes",))
_OUTLINE = InputRequirement(StageKey.OUTLINE, ("post_structure",))
_REFINED = InputRequirement(StageKey.REFINE, text=True)

REQUIRED_INPUTS: dict[StageKey, tuple[InputRequirement, ...]] = {
    StageKey.PREPROCESS: (),
    StageKey.SUMMARY: (InputRequirement(StageKey.PREPROCESS, required=False),),
    StageKey.QUOTES: (),
    StageKey.OUTLINE: (_SUMMARY, _QUOTES),
    StageKey.PARAGRAPHS: (_QUOTES, _OUTLINE),
    StageKey.HEADLINES: (InputRequirement(StageKey.SUMMARY, ("episode_crux",)), _OUTLINE),
    StageKey.DRAFT: (
        _SUMMARY,
        _QUOTES,
        _OUTLINE,
        InputRequirement(StageKey.PARAGRAPHS, ("section_details",)),
        InputRequirement(StageKey.HEADLINES, ("headlines",)),
    ),
    StageKey.REFINE: (InputRequirement(StageKey.DRAFT, ("articles",), text=True),),
    **{
        key: (_REFINED, _QUOTES, InputRequirement(StageKey.HEADLINES, ("social_hooks",)))
        for key in SOCIAL_STAGES.values()
    },
    StageKey.EMAIL: (_REFINED, InputRequirement(StageKey.HEADLINES, ("headlines", "taglines"))),
}


def missing_inputs(key: StageKey, outputs: StageOutputs) -> list[str]:
    """List the required prior outputs a stage would find missing.

    Optional requirements are logged at debug level and never listed.
    """
    missing: list[str] = []
    for requirement in REQUIRED_INPUTS.get(key, ()):
        gaps: list[str] = []
        result = outputs.get(requirement.stage)
        if result is None:
            gaps.append(f"{requirement.stage.value} output")
        else:
            for name in requirement.fields:
                if not getattr(result.output_data, name, None):
                    gaps.append(f"{requirement.stage.value}.{name}")
            if requirement.text and not result.output_text:
                gaps.append(f"{requirement.stage.value}.output_text")

        if gaps and not requirement.required:
            log.debug("optional_input_missing", stage=key.value, missing=gaps)
            continue
        missing.extend(gaps)
    return missing


class PhaseScheduler:
    """Drive the phase plan for one run.

    Attributes:
        runner: Executes individual stages.
        plan: Ordered phase groups.
    """

    def __init__(self, runner: StageRunner, plan: tuple[PhaseGroup, ...] = PHASE_PLAN) -> None:
        self.runner = runner
        self.plan = plan

    async def run(
        self,
        context: ProcessingContext,
        reports: list[PhaseReport] | None = None,
    ) -> list[PhaseReport]:
        """Run every phase group in order.

        Args:
            context: Run context; completed results are recorded into it.
            reports: Optional report list to fill in place, so a caller
                still sees phase statuses when the run fails.

        Returns:
            One report per phase group.

        Raises:
            ProcessingError: From the first failing stage.
        """
        if reports is None:
            reports = []
        reports[:] = [PhaseReport(name=g.name, stages=g.stages) for g in self.plan]
        for group, report in zip(self.plan, reports, strict=True):
            await self.run_group(group, context, report)
        return reports

    async def run_group(
        self,
        group: PhaseGroup,
        context: ProcessingContext,
        report: PhaseReport,
    ) -> list[StageResult]:
        """Run one phase group and record its results.

        Raises:
            ProcessingError: If an input is missing or any stage fails.
        """
        report.status = PhaseStatus.RUNNING
        log.info("phase_start", phase=group.name, stages=[k.value for k in group.stages])

        try:
            self._check_inputs(group, context)
            batch = await fan_out(group.stages, partial(self._run_stage, context))
        except PodcraftError as e:
            report.status = PhaseStatus.FAILED
            report.error = str(e)
            log.error("phase_failed", phase=group.name, error=str(e))
            raise

        for result in batch.results:
            context.previous_stages.record(result)
        report.usage = batch.usage
        report.status = PhaseStatus.COMPLETED
        log.info(
            "phase_complete",
            phase=group.name,
            cost_usd=round(batch.usage.cost_usd, 6),
            duration_ms=batch.usage.duration_ms,
        )
        return batch.results

    def _check_inputs(self, group: PhaseGroup, context: ProcessingContext) -> None:
        for key in group.stages:
            missing = missing_inputs(key, context.previous_stages)
            if missing:
                descriptor = self.runner.registry.get(key)
                raise ProcessingError(
                    f"Missing required inputs: {', '.join(missing)}",
                    stage_number=descriptor.number,
                    stage_name=descriptor.name,
                    run_id=context.run_id,
                )

    async def _run_stage(self, context: ProcessingContext, key: StageKey) -> StageResult:
        """Run a stage, giving bare domain errors their stage and run context."""
        try:
            return await self.runner.run(key, context)
        except ProcessingError:
            raise
        except PodcraftError as e:
            descriptor = self.runner.registry.get(key)
            raise ProcessingError(
                str(e),
                stage_number=descriptor.number,
                stage_name=descriptor.name,
                run_id=context.run_id,
            ) from e
