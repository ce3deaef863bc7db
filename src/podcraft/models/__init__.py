"""Pydantic models for stage outputs.

Model-produced structured output is parsed into these models; free-text
stages use them to record what was measured about their prose.
"""

from podcraft.models.distribute import EmailOutput, Platform, SocialPost, SocialPostSet
from podcraft.models.extract import QUOTE_USAGES, KeyQuote, QuotesOutput, SummaryOutput
from podcraft.models.plan import (
    HeadlinesOutput,
    OutlineOutput,
    OutlineSection,
    ParagraphPlan,
    ParagraphsOutput,
    PostStructure,
    SectionDetail,
)
from podcraft.models.preprocess import (
    EpisodeMetadata,
    PreprocessOutput,
    Speakers,
    VerbatimQuote,
)
from podcraft.models.write import Article, ArticleKind, ArticleSet

__all__ = [
    "QUOTE_USAGES",
    "Article",
    "ArticleKind",
    "ArticleSet",
    "EmailOutput",
    "EpisodeMetadata",
    "HeadlinesOutput",
    "KeyQuote",
    "OutlineOutput",
    "OutlineSection",
    "ParagraphPlan",
    "ParagraphsOutput",
    "Platform",
    "PostStructure",
    "PreprocessOutput",
    "QuotesOutput",
    "SectionDetail",
    "SocialPost",
    "SocialPostSet",
    "Speakers",
    "SummaryOutput",
    "VerbatimQuote",
]
