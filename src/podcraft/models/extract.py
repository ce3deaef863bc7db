"""Pydantic models for the extract phase: episode summary and quote set.

These two outputs are canonical. Every later stage that needs the
episode's summary or quotes reads them from here.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

QUOTE_USAGES = ("headline", "pullquote", "social", "key_point")


class SummaryOutput(BaseModel):
    """Episode summary and its one-paragraph crux."""

    summary: str = Field(
        description="In-depth narrative summary (400-600 words) weaving together the episode",
        min_length=1,
    )
    episode_crux: str = Field(
        description="The single core insight of the episode in 2-3 sentences",
        min_length=1,
    )


class KeyQuote(BaseModel):
    """A quote chosen for reuse across content."""

    quote: str = Field(description="Exact words from the transcript", min_length=1)
    speaker: str = Field(description="Who said it", min_length=1)
    context: str = Field(default="", description="What prompted the quote")
    significance: str = Field(description="Why this quote matters", min_length=1)
    usage_suggestion: str = Field(
        description=f"Where to use it: one of {', '.join(QUOTE_USAGES)}",
    )


class QuotesOutput(BaseModel):
    """The episode's quote set."""

    key_quotes: list[KeyQuote] = Field(description="5-8 of the most quotable moments")
