"""Stage 0: condense transcripts too long for the downstream models."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from podcraft.models import PreprocessOutput
from podcraft.observability.logging import get_logger
from podcraft.pipeline.gates import decide
from podcraft.pipeline.registry import StageKey
from podcraft.pipeline.results import StageResult
from podcraft.pipeline.stages.base import StageDeps, register_handler, run_extraction
from podcraft.validation import Verdict, verdict
from podcraft.validation.checks import Issue, item_count, min_length, required

if TYPE_CHECKING:
    from podcraft.pipeline.context import ProcessingContext
    from podcraft.pipeline.registry import StageDescriptor

log = get_logger(__name__)

MIN_SUMMARY_CHARS = 500
MIN_QUOTES = 5
MIN_QUOTE_CHARS = 20
MIN_TOPICS = 3


def validate_preprocess(output: PreprocessOutput) -> Verdict:
    """Digest checks: enough summary, quotes with speakers, topics and a host."""
    quote_issues: list[Issue] = []
    for i, quote in enumerate(output.verbatim_quotes):
        quote_issues += min_length(f"verbatim_quotes[{i}].quote", quote.quote, MIN_QUOTE_CHARS)
        quote_issues += required(f"verbatim_quotes[{i}].speaker", quote.speaker)

    return verdict(
        min_length("comprehensive_summary", output.comprehensive_summary, MIN_SUMMARY_CHARS),
        item_count("verbatim_quotes", output.verbatim_quotes, MIN_QUOTES),
        quote_issues,
        item_count("key_topics", output.key_topics, MIN_TOPICS),
        required("speakers.host", output.speakers.host),
    )


@register_handler(StageKey.PREPROCESS)
async def preprocess(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Skip short transcripts; condense long ones from the full text.

    The whole transcript is always sent; it is never truncated to fit.
    """
    decision = decide(context.raw_transcript, deps.config.preprocess_threshold_tokens)
    if not decision.needed:
        log.info(
            "preprocess_skipped",
            estimated_tokens=decision.estimated_tokens,
            threshold=decision.threshold,
        )
        return StageResult.skip(
            StageKey.PREPROCESS,
            estimated_tokens=decision.estimated_tokens,
            threshold=decision.threshold,
        )

    log.info(
        "preprocess_started",
        estimated_tokens=decision.estimated_tokens,
        threshold=decision.threshold,
    )
    variables = {
        **context.settings.as_variables(),
        "transcript": context.raw_transcript,
    }
    result = await run_extraction(
        stage, deps, "preprocess", variables, PreprocessOutput, validate_preprocess
    )
    return replace(
        result,
        metadata={"estimated_tokens": decision.estimated_tokens, "threshold": decision.threshold},
    )
