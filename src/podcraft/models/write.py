"""Models describing drafted and refined articles.

The article text itself travels as the stage's ``output_text``; these models
carry what the pipeline measured about it.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ArticleKind = Literal["article", "episode_recap", "topic_article"]


class Article(BaseModel):
    """Measurements of one markdown article."""

    kind: ArticleKind = "article"
    title: str | None = None
    word_count: int = 0
    section_count: int = 0
    blockquote_count: int = 0
    ai_patterns: list[str] = Field(default_factory=list)


class ArticleSet(BaseModel):
    """Every article produced by a write-phase stage."""

    mode: Literal["single", "dual"] = "single"
    articles: list[Article]

    def get(self, kind: ArticleKind) -> Article | None:
        for article in self.articles:
            if article.kind == kind:
                return article
        return None
