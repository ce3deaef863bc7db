"""Stages 3-5: outline, paragraph plan and headlines."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from podcraft.models import HeadlinesOutput, OutlineOutput, ParagraphsOutput
from podcraft.observability.logging import get_logger
from podcraft.pipeline.canonical import episode_summary, quote_set
from podcraft.pipeline.registry import StageKey
from podcraft.pipeline.stages.base import StageDeps, register_handler, run_extraction
from podcraft.validation import Verdict, verdict
from podcraft.validation.checks import Issue, item_count, min_length, required

if TYPE_CHECKING:
    from podcraft.models import QuotesOutput
    from podcraft.pipeline.context import ProcessingContext
    from podcraft.pipeline.registry import StageDescriptor
    from podcraft.pipeline.results import StageResult

log = get_logger(__name__)

MIN_SECTIONS = 3
MAX_SECTIONS = 4
MIN_SECTION_WORDS = 50
TOTAL_WORDS_RANGE = (600, 900)
HEADLINE_CHARS_RANGE = (20, 100)


def quotes_variable(quotes: QuotesOutput) -> list[dict[str, Any]]:
    """Quote set as plain data for prompt templates."""
    fields = {"quote", "speaker", "usage_suggestion"}
    return [q.model_dump(include=fields) for q in quotes.key_quotes]


# --- Outline ---


def validate_outline(output: OutlineOutput) -> Verdict:
    structure = output.post_structure
    per_section: list[Issue] = []
    for i, section in enumerate(structure.sections):
        per_section += required(f"sections[{i}].section_title", section.section_title)
        per_section += required(f"sections[{i}].purpose", section.purpose)
        if section.word_count_target < MIN_SECTION_WORDS:
            per_section.append(
                Issue(
                    f"sections[{i}].word_count_target",
                    f"must be at least {MIN_SECTION_WORDS}, got {section.word_count_target}",
                )
            )
    return verdict(
        min_length("post_structure.hook", structure.hook, 20),
        item_count("post_structure.sections", structure.sections, MIN_SECTIONS, MAX_SECTIONS),
        per_section,
        min_length("post_structure.cta", structure.cta, 10),
    )


def render_outline(output: OutlineOutput) -> str:
    structure = output.post_structure
    lines = ["## Blog Outline", "", f"**Hook:** {structure.hook}", ""]
    for i, section in enumerate(structure.sections, 1):
        lines.append(f"{i}. **{section.section_title}** ({section.word_count_target} words)")
        lines.append(f"   {section.purpose}")
    lines += ["", f"**CTA:** {structure.cta}"]
    return "\n".join(lines)


@register_handler(StageKey.OUTLINE)
async def outline(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Plan the article's hook, sections and call to action."""
    summary = episode_summary(context)
    variables = {
        **context.settings.as_variables(),
        "summary": summary.summary,
        "episode_crux": summary.episode_crux,
        "quotes": quotes_variable(quote_set(context)),
    }
    result = await run_extraction(
        stage, deps, "outline", variables, OutlineOutput, validate_outline, render_outline
    )

    total = cast(OutlineOutput, result.output_data).estimated_total_words
    low, high = TOTAL_WORDS_RANGE
    if not low <= total <= high:
        log.warning("outline_word_estimate_out_of_range", estimated=total, expected=[low, high])
    return result


# --- Paragraphs ---


def validate_paragraphs(output: ParagraphsOutput) -> Verdict:
    per_section: list[Issue] = []
    for i, section in enumerate(output.section_details):
        per_section += required(f"section_details[{i}].section_title", section.section_title)
        per_section += item_count(f"section_details[{i}].paragraphs", section.paragraphs, 1)
        for j, paragraph in enumerate(section.paragraphs):
            per_section += min_length(
                f"section_details[{i}].paragraphs[{j}].main_point", paragraph.main_point, 10
            )
    return verdict(
        item_count("section_details", output.section_details, MIN_SECTIONS),
        per_section,
    )


def render_paragraphs(output: ParagraphsOutput) -> str:
    lines = ["## Paragraph Plan"]
    for section in output.section_details:
        lines += ["", f"### {section.section_title}"]
        for paragraph in section.paragraphs:
            lines.append(f"- {paragraph.main_point}")
            lines.extend(f"  - {element}" for element in paragraph.supporting_elements)
    return "\n".join(lines)


@register_handler(StageKey.PARAGRAPHS)
async def paragraphs(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Break each outline section into planned paragraphs."""
    plan = context.previous_stages.require(StageKey.OUTLINE, OutlineOutput)
    variables = {
        **context.settings.as_variables(),
        "sections": [s.model_dump() for s in plan.post_structure.sections],
        "quotes": quotes_variable(quote_set(context)),
    }
    return await run_extraction(
        stage,
        deps,
        "paragraphs",
        variables,
        ParagraphsOutput,
        validate_paragraphs,
        render_paragraphs,
    )


# --- Headlines ---


def validate_headlines(output: HeadlinesOutput) -> Verdict:
    return verdict(
        item_count("headlines", output.headlines, 5),
        item_count("subheadings", output.subheadings, 4),
        item_count("taglines", output.taglines, 3),
        item_count("social_hooks", output.social_hooks, 3),
    )


def render_headlines(output: HeadlinesOutput) -> str:
    sections = (
        ("Headlines", output.headlines),
        ("Subheadings", output.subheadings),
        ("Taglines", output.taglines),
        ("Social Hooks", output.social_hooks),
    )
    lines: list[str] = []
    for title, options in sections:
        lines += [f"## {title}", ""]
        lines.extend(f"- {option}" for option in options)
        lines.append("")
    return "\n".join(lines).rstrip()


@register_handler(StageKey.HEADLINES)
async def headlines(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Propose headlines, subheadings, taglines and social hooks."""
    summary = episode_summary(context)
    plan = context.previous_stages.require(StageKey.OUTLINE, OutlineOutput)
    variables = {
        **context.settings.as_variables(),
        "episode_crux": summary.episode_crux,
        "hook": plan.post_structure.hook,
        "section_titles": [s.section_title for s in plan.post_structure.sections],
    }
    result = await run_extraction(
        stage, deps, "headlines", variables, HeadlinesOutput, validate_headlines, render_headlines
    )

    low, high = HEADLINE_CHARS_RANGE
    for headline in cast(HeadlinesOutput, result.output_data).headlines:
        if not low <= len(headline) <= high:
            log.warning("headline_length_out_of_range", headline=headline, length=len(headline))
    return result
