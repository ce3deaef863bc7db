"""Stages 1-2: the canonical episode summary and quote set."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, cast

from podcraft.models import QUOTE_USAGES, QuotesOutput, SummaryOutput
from podcraft.observability.logging import get_logger
from podcraft.pipeline.registry import StageKey
from podcraft.pipeline.stages.base import StageDeps, register_handler, run_extraction
from podcraft.validation import Verdict, verdict
from podcraft.validation.checks import (
    Issue,
    count_words,
    item_count,
    max_length,
    min_length,
    min_words,
    one_of,
    required,
)

if TYPE_CHECKING:
    from podcraft.pipeline.context import ProcessingContext
    from podcraft.pipeline.registry import StageDescriptor
    from podcraft.pipeline.results import StageResult

log = get_logger(__name__)

SUMMARY_MIN_WORDS = 300
SUMMARY_SOFT_MAX_WORDS = 800
CRUX_MIN_CHARS = 50
CRUX_MAX_CHARS = 500
MIN_QUOTES = 5
MAX_QUOTES = 8
MIN_QUOTE_CHARS = 20


def validate_summary(output: SummaryOutput) -> Verdict:
    return verdict(
        min_words("summary", output.summary, SUMMARY_MIN_WORDS),
        min_length("episode_crux", output.episode_crux, CRUX_MIN_CHARS),
        max_length("episode_crux", output.episode_crux, CRUX_MAX_CHARS),
    )


def validate_quotes(output: QuotesOutput) -> Verdict:
    """Quote set checks: 5-8 quotes, each sourced, explained and tagged for use."""
    per_quote: list[Issue] = []
    for i, quote in enumerate(output.key_quotes):
        per_quote += min_length(f"key_quotes[{i}].quote", quote.quote, MIN_QUOTE_CHARS)
        per_quote += required(f"key_quotes[{i}].speaker", quote.speaker)
        per_quote += required(f"key_quotes[{i}].significance", quote.significance)
        per_quote += one_of(
            f"key_quotes[{i}].usage_suggestion", quote.usage_suggestion, QUOTE_USAGES
        )
    return verdict(
        item_count("key_quotes", output.key_quotes, MIN_QUOTES, MAX_QUOTES),
        per_quote,
    )


def render_summary(output: SummaryOutput) -> str:
    return "\n".join(
        ["## Episode Summary", "", output.summary, "", "## Episode Crux", "", output.episode_crux]
    )


def render_quotes(output: QuotesOutput) -> str:
    blocks = ["## Key Quotes"]
    for quote in output.key_quotes:
        blocks.append(
            f'> "{quote.quote}"\n> - {quote.speaker}\n\n'
            f"*{quote.significance}* ({quote.usage_suggestion})"
        )
    return "\n\n".join(blocks)


@register_handler(StageKey.SUMMARY)
async def episode_summary(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Summarize the episode and state its crux.

    Works from the preprocessing digest when there is one.
    """
    variables = {
        **context.settings.as_variables(),
        "transcript": context.working_transcript(),
    }
    result = await run_extraction(
        stage, deps, "summary", variables, SummaryOutput, validate_summary, render_summary
    )

    words = count_words(cast(SummaryOutput, result.output_data).summary)
    if words > SUMMARY_SOFT_MAX_WORDS:
        log.warning("summary_longer_than_expected", words=words, soft_max=SUMMARY_SOFT_MAX_WORDS)
    return result


@register_handler(StageKey.QUOTES)
async def extract_quotes(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Pick the episode's most quotable moments, verbatim from the raw transcript."""
    variables = {
        **context.settings.as_variables(),
        "transcript": context.raw_transcript,
        "min_quotes": MIN_QUOTES,
        "max_quotes": MAX_QUOTES,
    }
    result = await run_extraction(
        stage, deps, "quotes", variables, QuotesOutput, validate_quotes, render_quotes
    )

    quotes = cast(QuotesOutput, result.output_data)
    usages = Counter(q.usage_suggestion for q in quotes.key_quotes)
    if len(usages) < 2:
        log.warning("quote_usage_low_variety", usages=dict(usages))
    return result
