"""Stages 6-7: draft the article(s), then refine them.

Both stages are generative: each article gets one retry with feedback and
is kept best-effort when it still misses the bar. Draft mode decides how
many articles there are:

- ``single``: one article covering the episode.
- ``dual``: an episode recap plus a standalone topic article.

Articles of one stage are written concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from podcraft.models import (
    Article,
    ArticleKind,
    ArticleSet,
    HeadlinesOutput,
    OutlineOutput,
    ParagraphsOutput,
)
from podcraft.observability.logging import get_logger
from podcraft.pipeline.batching import fan_out
from podcraft.pipeline.canonical import episode_summary, quote_set
from podcraft.pipeline.registry import StageKey
from podcraft.pipeline.results import StageResult
from podcraft.pipeline.stages.base import (
    StageDeps,
    register_handler,
    result_usage_fields,
    text_attempt,
)
from podcraft.pipeline.stages.plan import quotes_variable
from podcraft.validation import FeedbackOutcome, Verdict, generate_with_feedback, verdict
from podcraft.validation.checks import (
    analyze_structure,
    detect_ai_patterns,
    extract_title,
    markdown_article,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from podcraft.pipeline.config import DraftMode
    from podcraft.pipeline.context import ProcessingContext
    from podcraft.pipeline.registry import StageDescriptor

log = get_logger(__name__)

DRAFT_MIN_WORDS = 600
DRAFT_MIN_CHARS = 3000
REFINE_MIN_WORDS = 600
REFINE_MIN_CHARS = 500
MIN_SECTIONS = 2


@dataclass(frozen=True)
class DraftStrategy:
    """Which articles a run writes, and the templates that write them."""

    mode: DraftMode
    kinds: tuple[ArticleKind, ...]

    def draft_template(self, kind: ArticleKind) -> str:
        return "draft" if kind == "article" else f"draft_{kind}"

    def pack(self, texts: dict[ArticleKind, str]) -> str | dict[str, str]:
        """Stage output text: a plain string for one article, else by kind."""
        if len(self.kinds) == 1:
            return texts[self.kinds[0]]
        return {kind: texts[kind] for kind in self.kinds}


STRATEGIES: dict[str, DraftStrategy] = {
    "single": DraftStrategy("single", ("article",)),
    "dual": DraftStrategy("dual", ("episode_recap", "topic_article")),
}


def strategy_for(mode: str) -> DraftStrategy:
    try:
        return STRATEGIES[mode]
    except KeyError:
        raise ValueError(
            f"Unknown draft mode {mode!r}; must be one of: {', '.join(STRATEGIES)}"
        ) from None


def validate_draft(kind: str, content: str) -> Verdict:
    return verdict(
        markdown_article(
            kind,
            content,
            min_words_count=DRAFT_MIN_WORDS,
            min_chars=DRAFT_MIN_CHARS,
            min_sections=MIN_SECTIONS,
        )
    )


def validate_refined(kind: str, content: str) -> Verdict:
    return verdict(
        markdown_article(
            kind,
            content,
            min_words_count=REFINE_MIN_WORDS,
            min_chars=REFINE_MIN_CHARS,
            min_sections=MIN_SECTIONS,
        )
    )


def measure(kind: ArticleKind, content: str) -> Article:
    """Record what an article looks like; AI-style phrases are reported, not rejected."""
    structure = analyze_structure(content)
    return Article(
        kind=kind,
        title=extract_title(content),
        word_count=structure.word_count,
        section_count=structure.h2_count,
        blockquote_count=structure.blockquote_count,
        ai_patterns=detect_ai_patterns(content),
    )


async def _write_articles(
    stage: StageDescriptor,
    deps: StageDeps,
    strategy: DraftStrategy,
    jobs: dict[ArticleKind, tuple[str, dict[str, Any]]],
    validate: Callable[[str, str], Verdict],
) -> StageResult:
    """Generate every article concurrently and fold them into one result."""

    async def write_one(kind: ArticleKind) -> FeedbackOutcome[str]:
        template, variables = jobs[kind]
        return await generate_with_feedback(
            partial(text_attempt, stage, deps, template, variables),
            partial(validate, kind),
            max_retries=deps.config.retries.generative,
            label=f"{stage.key.value}:{kind}",
        )

    batch = await fan_out(strategy.kinds, write_one)
    outcomes = dict(zip(strategy.kinds, batch.results, strict=True))
    texts = {kind: outcome.value for kind, outcome in outcomes.items()}
    articles = [measure(kind, texts[kind]) for kind in strategy.kinds]

    for article in articles:
        if article.ai_patterns:
            log.info(
                "ai_patterns_detected",
                stage=stage.key.value,
                kind=article.kind,
                patterns=article.ai_patterns,
            )

    return StageResult(
        stage=stage.key,
        output_data=ArticleSet(mode=strategy.mode, articles=articles),
        output_text=strategy.pack(texts),
        validation_issues=[issue for o in outcomes.values() for issue in o.issues],
        metadata={"attempts": {kind: o.attempts for kind, o in outcomes.items()}},
        **result_usage_fields(batch.usage),
    )


@register_handler(StageKey.DRAFT)
async def draft(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Write the article(s) from the plan, summary and quotes."""
    strategy = strategy_for(deps.config.effective_draft_mode)
    summary = episode_summary(context)
    outputs = context.previous_stages
    plan = outputs.require(StageKey.OUTLINE, OutlineOutput)
    details = outputs.require(StageKey.PARAGRAPHS, ParagraphsOutput)
    titles = outputs.require(StageKey.HEADLINES, HeadlinesOutput)

    variables = {
        **context.settings.as_variables(),
        "summary": summary.summary,
        "episode_crux": summary.episode_crux,
        "quotes": quotes_variable(quote_set(context)),
        "hook": plan.post_structure.hook,
        "cta": plan.post_structure.cta,
        "sections": [s.model_dump() for s in details.section_details],
        "headlines": titles.headlines,
        "subheadings": titles.subheadings,
        "min_words": DRAFT_MIN_WORDS,
    }
    jobs = {kind: (strategy.draft_template(kind), variables) for kind in strategy.kinds}
    return await _write_articles(stage, deps, strategy, jobs, validate_draft)


@register_handler(StageKey.REFINE)
async def refine(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Edit each drafted article for voice, flow and stock phrasing."""
    drafted = context.previous_stages.require(StageKey.DRAFT, ArticleSet)
    strategy = STRATEGIES[drafted.mode]

    jobs: dict[ArticleKind, tuple[str, dict[str, Any]]] = {}
    for article in drafted.articles:
        jobs[article.kind] = (
            "refine",
            {
                **context.settings.as_variables(),
                "draft": context.previous_stages.text(StageKey.DRAFT, article.kind) or "",
                "ai_patterns": article.ai_patterns,
                "min_words": REFINE_MIN_WORDS,
            },
        )
    return await _write_articles(stage, deps, strategy, jobs, validate_refined)
