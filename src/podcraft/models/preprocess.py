"""Pydantic models for transcript preprocessing output.

Preprocessing condenses an over-long transcript so later stages can work
from a compact digest. The digest is an aid only: the episode summary and
quote set are still produced by their own stages.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class VerbatimQuote(BaseModel):
    """A quote copied exactly from the transcript."""

    quote: str = Field(description="Exact words from the transcript", min_length=1)
    speaker: str = Field(description="Who said it", min_length=1)
    context: str = Field(default="", description="What was being discussed")


class Speakers(BaseModel):
    """People speaking in the episode."""

    host: str = Field(description="Host name", min_length=1)
    guest: str | None = Field(default=None, description="Guest name, if any")
    guest_credentials: str | None = Field(default=None, description="Guest role or expertise")


class EpisodeMetadata(BaseModel):
    """Coarse facts about the episode."""

    inferred_title: str = Field(description="Working title for the episode", min_length=1)
    core_message: str = Field(description="One-sentence core message", min_length=1)
    estimated_duration: str = Field(default="", description="Approximate episode length")


class PreprocessOutput(BaseModel):
    """Condensed view of a long transcript."""

    comprehensive_summary: str = Field(
        description="Condensed narrative preserving every salient fact, 800-1500 words"
    )
    verbatim_quotes: list[VerbatimQuote] = Field(
        description="Notable quotes copied exactly, 8-15 items"
    )
    key_topics: list[str] = Field(description="Main topics discussed, 3-8 items")
    speakers: Speakers
    episode_metadata: EpisodeMetadata
