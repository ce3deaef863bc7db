"""Pipeline orchestrator: turn one transcript into every content artifact."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from podcraft.errors import ProcessingError, ValidationError
from podcraft.ledger import RunEstimate, Usage, estimate_run_cost, estimate_tokens, sequential
from podcraft.observability.logging import get_logger
from podcraft.observability.tracing import run_context
from podcraft.observability.usage import JSONLUsageMeter, NullUsageMeter, UsageMeter
from podcraft.pipeline.config import EvergreenSettings, PipelineConfig
from podcraft.pipeline.context import ProcessingContext
from podcraft.pipeline.gates import decide
from podcraft.pipeline.registry import STAGE_REGISTRY, Provider, StageKey
from podcraft.pipeline.results import PhaseStatus
from podcraft.pipeline.runner import StageRunner
from podcraft.pipeline.scheduler import PhaseScheduler, missing_inputs
from podcraft.pipeline.stages import StageDeps
from podcraft.prompts import PromptLoader
from podcraft.providers.base import ProviderError
from podcraft.providers.invoker import LangChainInvoker

if TYPE_CHECKING:
    from collections.abc import Mapping

    from podcraft.models import Platform
    from podcraft.pipeline.results import PhaseReport, StageResult
    from podcraft.providers.base import ModelInvoker

log = get_logger(__name__)

TOKEN_LIMIT_HINT = "content too long, shorten input"

# Typical (prompt overhead, output) tokens per stage, before the transcript
_STAGE_TOKEN_BUDGETS: dict[StageKey, tuple[int, int]] = {
    StageKey.PREPROCESS: (1500, 3000),
    StageKey.SUMMARY: (3000, 500),
    StageKey.QUOTES: (3500, 600),
    StageKey.OUTLINE: (2000, 400),
    StageKey.PARAGRAPHS: (2500, 800),
    StageKey.HEADLINES: (2000, 1200),
    StageKey.DRAFT: (4000, 1500),
    StageKey.REFINE: (3000, 1200),
    StageKey.SOCIAL_INSTAGRAM: (2500, 2000),
    StageKey.SOCIAL_TWITTER: (2500, 2000),
    StageKey.SOCIAL_LINKEDIN: (2500, 2000),
    StageKey.SOCIAL_FACEBOOK: (2500, 2000),
    StageKey.EMAIL: (2000, 1500),
}
_READS_TRANSCRIPT = frozenset({StageKey.PREPROCESS, StageKey.SUMMARY, StageKey.QUOTES})


@dataclass
class PipelineRun:
    """Everything one run produced.

    Attributes:
        run_id: Identifier for tracing and usage records.
        context: Final context holding every stage result.
        phases: One report per phase group, in plan order.
    """

    run_id: str
    context: ProcessingContext
    phases: list[PhaseReport] = field(default_factory=list)

    @property
    def results(self) -> dict[StageKey, StageResult]:
        return dict(self.context.previous_stages)

    @property
    def usage(self) -> Usage:
        """Run totals: phases ran one after another."""
        return sequential(self.phases)

    @property
    def validation_issues(self) -> dict[StageKey, list[str]]:
        """Best-effort quality problems, by stage."""
        return {k: r.validation_issues for k, r in self.results.items() if r.validation_issues}


def describe_failure(error: BaseException) -> str:
    """User-facing message for a failed run.

    Names the failing stage and run, and replaces raw provider text with a
    remediation hint when the input did not fit the model.
    """
    stage = None
    run_id = None
    if isinstance(error, ProcessingError):
        stage = error.stage_name
        run_id = error.run_id

    cause: BaseException | None = error
    while cause is not None and not isinstance(cause, ProviderError):
        cause = cause.__cause__
    token_limit = isinstance(cause, ProviderError) and cause.is_token_limit

    where = f"Stage '{stage}' failed" if stage else "Pipeline failed"
    if run_id:
        where += f" (run {run_id})"
    if token_limit:
        return f"{where}: {TOKEN_LIMIT_HINT}"
    detail = error.detail if isinstance(error, ProcessingError) else str(error)
    return f"{where}: {detail}"


class PipelineOrchestrator:
    """Run the fixed phase plan over a transcript.

    The orchestrator wires the collaborators together:
    - One LangChain invoker per provider, with retry and timeout from config
    - Prompt templates
    - Usage metering (JSONL file when ``usage_log`` is configured)

    Attributes:
        config: Pipeline configuration.
        deps: Collaborators shared by all stage handlers.
        runner: Single-stage executor.
        scheduler: Phase plan driver.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        invokers: Mapping[Provider, ModelInvoker] | None = None,
        prompts: PromptLoader | None = None,
        usage_meter: UsageMeter | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Pipeline configuration. Defaults to built-in defaults.
            invokers: Model invokers by provider. Defaults to LangChain-backed
                invokers for every provider.
            prompts: Template loader. Defaults to the packaged templates.
            usage_meter: Usage sink. Defaults from ``config.usage_log``.
        """
        self.config = config or PipelineConfig()
        if invokers is None:
            invokers = {
                provider: LangChainInvoker(
                    provider.value,
                    retry_policy=self.config.retries.provider_policy(),
                    timeout_seconds=self.config.request_timeout_seconds,
                )
                for provider in Provider
            }
        if usage_meter is None:
            usage_meter = (
                JSONLUsageMeter(self.config.usage_log)
                if self.config.usage_log is not None
                else NullUsageMeter()
            )

        self.deps = StageDeps(
            invokers=invokers,
            prompts=prompts or PromptLoader(),
            config=self.config,
            usage_meter=usage_meter,
        )
        self.runner = StageRunner(self.deps)
        self.scheduler = PhaseScheduler(self.runner)

    def new_context(
        self,
        transcript: str,
        settings: EvergreenSettings | None = None,
        run_id: str = "",
    ) -> ProcessingContext:
        return ProcessingContext(
            run_id=run_id,
            raw_transcript=transcript,
            settings=settings or self.config.evergreen,
            config=self.config,
        )

    async def run(
        self,
        transcript: str,
        settings: EvergreenSettings | None = None,
        *,
        run_id: str | None = None,
    ) -> PipelineRun:
        """Process a transcript through every phase.

        Args:
            transcript: Raw episode transcript.
            settings: Show settings; defaults to the configured ones.
            run_id: Optional run identifier; generated when omitted.

        Returns:
            PipelineRun with every stage result and phase report.

        Raises:
            ValidationError: If the transcript is empty.
            ProcessingError: From the first stage that fails unrecoverably.
        """
        if not transcript or not transcript.strip():
            raise ValidationError("transcript", "is required")

        with run_context(run_id) as rid:
            context = self.new_context(transcript, settings, rid)
            log.info(
                "pipeline_start",
                transcript_chars=len(transcript),
                estimated_tokens=estimate_tokens(transcript),
                draft_mode=self.config.effective_draft_mode,
            )

            reports: list[PhaseReport] = []
            try:
                await self.scheduler.run(context, reports)
            except ProcessingError as e:
                failed = [r.name for r in reports if r.status is PhaseStatus.FAILED]
                log.error("pipeline_failed", phase=failed[0] if failed else None, error=str(e))
                raise

            pipeline_run = PipelineRun(run_id=rid, context=context, phases=reports)
            totals = pipeline_run.usage
            log.info(
                "pipeline_complete",
                stages=len(context.previous_stages),
                input_tokens=totals.input_tokens,
                output_tokens=totals.output_tokens,
                cost_usd=round(totals.cost_usd, 6),
                duration_ms=totals.duration_ms,
                stages_with_issues=len(pipeline_run.validation_issues),
            )
            return pipeline_run

    async def regenerate(
        self,
        stage: StageKey | int | str,
        context: ProcessingContext,
        *,
        platform: Platform | str | None = None,
    ) -> StageResult:
        """Rerun one stage against a context whose inputs are already present.

        The fresh result is returned, not recorded: outputs stay append-only.

        Raises:
            ProcessingError: For an unknown stage, missing inputs, or failure.
        """
        descriptor = STAGE_REGISTRY.resolve(stage, platform)
        missing = missing_inputs(descriptor.key, context.previous_stages)
        if missing:
            raise ProcessingError(
                f"Missing required inputs: {', '.join(missing)}",
                stage_number=descriptor.number,
                stage_name=descriptor.name,
                run_id=context.run_id,
            )
        with run_context(context.run_id or None):
            log.info("stage_regenerate", stage=descriptor.key.value)
            return await self.runner.run(descriptor.key, context)

    def estimate(self, transcript: str) -> RunEstimate:
        """Project the cost of running ``transcript`` with the current models."""
        gate = decide(transcript, self.config.preprocess_threshold_tokens)
        budgets: dict[str, tuple[str, int, int, bool]] = {}
        for descriptor in STAGE_REGISTRY:
            key = descriptor.key
            if key is StageKey.PREPROCESS and not gate.needed:
                continue
            if not self.config.is_enabled(key):
                continue
            _, model = self.config.resolve_model(descriptor)
            overhead, output_tokens = _STAGE_TOKEN_BUDGETS[key]
            budgets[key.value] = (model, overhead, output_tokens, key in _READS_TRANSCRIPT)
        return estimate_run_cost(transcript, budgets)

    async def close(self) -> None:
        """Wait for pending usage records."""
        await self.runner.aclose()
