"""Validate-with-feedback retry for generative stages.

Generative stages (drafts, refined prose, posts) have a soft quality bar.
When an attempt misses it, the stage is asked again with feedback that
leads with what to fix. When attempts run out the best attempt is kept
and its problems are reported instead of failing the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from podcraft.ledger import Usage, sequential
from podcraft.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from podcraft.validation.checks import Verdict

log = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 1


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """One generation attempt and what it cost."""

    value: T
    usage: Usage


@dataclass(frozen=True)
class FeedbackOutcome(Generic[T]):
    """Final result of a validate-with-feedback loop.

    Attributes:
        value: The accepted value, or the best one when none passed.
        verdict: Verdict of ``value``.
        attempts: Number of generation attempts made.
        usage: Sequential total over every attempt.
    """

    value: T
    verdict: Verdict
    attempts: int
    usage: Usage

    @property
    def issues(self) -> list[str]:
        return self.verdict.messages


def format_feedback(verdict: Verdict) -> str:
    """Render a failing verdict as action-first retry feedback."""
    lines = [
        "Your previous response was rejected. Fix every problem below and respond again "
        "in the same format.",
        "",
        "Problems:",
    ]
    lines.extend(f"- {issue}" for issue in verdict.issues)
    return "\n".join(lines)


async def generate_with_feedback(
    generate: Callable[[str | None], Awaitable[Attempt[T]]],
    validate: Callable[[T], Verdict],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    label: str = "",
) -> FeedbackOutcome[T]:
    """Generate, validate, and retry with feedback up to ``max_retries`` times.

    Never raises for quality: after exhausting retries the attempt with the
    fewest issues is returned (the later attempt wins ties).

    Args:
        generate: Called with ``None`` first, then with feedback text naming
            the violated constraints.
        validate: Structural checks for a generated value.
        max_retries: Re-invocations allowed after the first attempt.
        label: Name used in log events.

    Returns:
        FeedbackOutcome with the chosen value and usage of all attempts.
    """
    attempts: list[Attempt[T]] = []
    best: tuple[Attempt[T], Verdict] | None = None
    feedback: str | None = None

    for attempt_number in range(1, max(0, max_retries) + 2):
        attempt = await generate(feedback)
        attempts.append(attempt)
        result = validate(attempt.value)

        if best is None or len(result.issues) <= len(best[1].issues):
            best = (attempt, result)

        if result.valid:
            break

        log.info(
            "generation_validation_fail",
            stage=label,
            attempt=attempt_number,
            issues=result.messages,
        )
        feedback = format_feedback(result)

    if best is None:
        raise ValueError(f"{label}: no attempt was made")
    chosen, chosen_verdict = best
    if not chosen_verdict.valid:
        log.warning(
            "generation_accepted_with_issues",
            stage=label,
            attempts=len(attempts),
            issues=chosen_verdict.messages,
        )

    return FeedbackOutcome(
        value=chosen.value,
        verdict=chosen_verdict,
        attempts=len(attempts),
        usage=sequential(attempts),
    )
