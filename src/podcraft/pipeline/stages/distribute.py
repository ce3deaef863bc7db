"""Stages 8-9: per-platform social posts and the newsletter email."""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING

import pydantic

from podcraft.errors import ValidationError
from podcraft.models import EmailOutput, HeadlinesOutput, Platform, SocialPostSet
from podcraft.observability.logging import get_logger
from podcraft.pipeline.canonical import episode_summary, quote_set
from podcraft.pipeline.registry import SOCIAL_STAGES, StageKey
from podcraft.pipeline.results import StageResult
from podcraft.pipeline.stages.base import (
    StageDeps,
    call_model,
    invocation_usage,
    register_handler,
    result_usage_fields,
    structured_attempt,
)
from podcraft.pipeline.stages.plan import quotes_variable
from podcraft.providers.json_parsing import parse_json_object
from podcraft.validation import Attempt, Verdict, generate_with_feedback, require_valid, verdict
from podcraft.validation.checks import Issue, item_count, min_length, required

if TYPE_CHECKING:
    from podcraft.pipeline.context import ProcessingContext
    from podcraft.pipeline.registry import StageDescriptor

log = get_logger(__name__)

MIN_POSTS = 5
MIN_SUBJECT_LINES = 5
MIN_PREVIEW_TEXTS = 3
MIN_EMAIL_BODY_CHARS = 200


def _article_text(context: ProcessingContext) -> str:
    """The refined article to promote (the episode recap in dual mode)."""
    outputs = context.previous_stages
    return (
        outputs.text(StageKey.REFINE, "episode_recap")
        or outputs.text(StageKey.REFINE)
        or ""
    )


# --- Social posts ---


@dataclass(frozen=True)
class PostsDraft:
    """A social response: the raw text and whatever could be parsed from it."""

    raw: str
    posts: SocialPostSet | None = None
    problems: Verdict | None = None


def parse_posts(platform: Platform, raw: str) -> PostsDraft:
    """Parse a free-text JSON response into a post set."""
    outcome = parse_json_object(raw)
    if not outcome.ok:
        problem = Issue("response", f"not valid JSON ({outcome.error})")
        return PostsDraft(raw, problems=verdict([problem]))
    try:
        posts = SocialPostSet.model_validate({**(outcome.value or {}), "platform": platform})
    except pydantic.ValidationError as e:
        return PostsDraft(raw, problems=Verdict.from_pydantic(e))
    return PostsDraft(raw, posts=posts)


def validate_posts(platform: Platform, draft: PostsDraft) -> Verdict:
    if draft.posts is None:
        return draft.problems or verdict([Issue("response", "no posts found")])

    per_post: list[Issue] = []
    for i, post in enumerate(draft.posts.posts):
        per_post += required(f"posts[{i}].content", post.content)
        per_post += required(f"posts[{i}].type", post.type)
        if platform is Platform.INSTAGRAM and not post.hashtags:
            per_post.append(Issue(f"posts[{i}].hashtags", "Instagram posts need hashtags"))
    return verdict(item_count("posts", draft.posts.posts, MIN_POSTS), per_post)


async def _posts_attempt(
    stage: StageDescriptor,
    platform: Platform,
    deps: StageDeps,
    variables: dict[str, object],
    feedback: str | None = None,
) -> Attempt[PostsDraft]:
    invocation = await call_model(stage, deps, stage.key.value, variables, feedback=feedback)
    draft = parse_posts(platform, invocation.text or "")
    return Attempt(draft, invocation_usage(invocation))


@register_handler(*SOCIAL_STAGES.values())
async def social_posts(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Write ready-to-post content for one platform.

    The response is requested as JSON in prose. When it still cannot be
    parsed after the retry, the raw text is kept so nothing is lost.
    """
    if stage.platform is None:
        raise ValueError(f"Stage {stage.key.value!r} has no platform")
    if not deps.config.is_enabled(stage.key):
        log.info("platform_disabled", platform=stage.platform.value)
        return StageResult.skip(stage.key, reason="platform disabled")

    summary = episode_summary(context)
    titles = context.previous_stages.require(StageKey.HEADLINES, HeadlinesOutput)
    variables: dict[str, object] = {
        **context.settings.as_variables(),
        "platform": stage.platform.value,
        "episode_crux": summary.episode_crux,
        "quotes": quotes_variable(quote_set(context)),
        "social_hooks": titles.social_hooks,
        "article": _article_text(context),
        "min_posts": MIN_POSTS,
    }

    outcome = await generate_with_feedback(
        partial(_posts_attempt, stage, stage.platform, deps, variables),
        partial(validate_posts, stage.platform),
        max_retries=deps.config.retries.generative,
        label=stage.key.value,
    )
    draft = outcome.value
    if draft.posts is None:
        log.warning("social_posts_unparsed", platform=stage.platform.value)

    return StageResult(
        stage=stage.key,
        output_data=draft.posts,
        output_text=draft.raw if draft.posts is None else None,
        validation_issues=outcome.issues,
        metadata={"attempts": outcome.attempts},
        **result_usage_fields(outcome.usage),
    )


# --- Email ---


def validate_email(output: EmailOutput) -> Verdict:
    return verdict(
        item_count("subject_lines", output.subject_lines, MIN_SUBJECT_LINES),
        item_count("preview_text", output.preview_text, MIN_PREVIEW_TEXTS),
        min_length("email_body", output.email_body, MIN_EMAIL_BODY_CHARS),
    )


async def _email_attempt(
    stage: StageDescriptor,
    deps: StageDeps,
    variables: dict[str, object],
    feedback: str | None = None,
) -> Attempt[EmailOutput]:
    """Structured email attempt; a response that misses the schema fails hard."""
    attempt = await structured_attempt(stage, deps, "email", variables, EmailOutput, feedback)
    value = attempt.value
    if isinstance(value, Verdict):
        require_valid(value)
        raise ValidationError("email", "response did not match the email schema")
    return Attempt(value, attempt.usage)


@register_handler(StageKey.EMAIL)
async def email(
    stage: StageDescriptor,
    context: ProcessingContext,
    deps: StageDeps,
) -> StageResult:
    """Write the newsletter: subject lines, preview texts and body.

    Short or sparse content is accepted best-effort; output that does not
    match the schema at all is a hard failure.
    """
    summary = episode_summary(context)
    titles = context.previous_stages.require(StageKey.HEADLINES, HeadlinesOutput)
    variables = {
        **context.settings.as_variables(),
        "episode_crux": summary.episode_crux,
        "headlines": titles.headlines,
        "taglines": titles.taglines,
        "article": _article_text(context),
    }

    outcome = await generate_with_feedback(
        partial(_email_attempt, stage, deps, variables),
        validate_email,
        max_retries=deps.config.retries.generative,
        label=stage.key.value,
    )
    return StageResult(
        stage=stage.key,
        output_data=outcome.value,
        output_text=outcome.value.email_body,
        validation_issues=outcome.issues,
        metadata={"attempts": outcome.attempts},
        **result_usage_fields(outcome.usage),
    )
