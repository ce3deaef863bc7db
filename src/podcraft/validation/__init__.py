"""Output validation and validate-with-feedback retry."""

from podcraft.validation.checks import Issue, Verdict, require_valid, verdict
from podcraft.validation.feedback import (
    Attempt,
    FeedbackOutcome,
    format_feedback,
    generate_with_feedback,
)

__all__ = [
    "Attempt",
    "FeedbackOutcome",
    "Issue",
    "Verdict",
    "format_feedback",
    "generate_with_feedback",
    "require_valid",
    "verdict",
]
