"""Pydantic models for the plan phase: outline, paragraph plan, headlines."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OutlineSection(BaseModel):
    """One section of the planned article."""

    section_title: str = Field(description="Working section title", min_length=1)
    purpose: str = Field(description="What this section accomplishes", min_length=1)
    word_count_target: int = Field(description="Target length in words", ge=1)


class PostStructure(BaseModel):
    """High-level shape of the article."""

    hook: str = Field(description="How the article opens")
    sections: list[OutlineSection] = Field(description="3-4 body sections")
    cta: str = Field(description="Closing call to action")


class OutlineOutput(BaseModel):
    """High-level article outline."""

    post_structure: PostStructure
    estimated_total_words: int = Field(default=750, description="Planned article length", ge=1)


class ParagraphPlan(BaseModel):
    """Plan for one paragraph."""

    main_point: str = Field(description="The paragraph's single point")
    supporting_elements: list[str] = Field(
        default_factory=list, description="Quotes, examples or data to use"
    )


class SectionDetail(BaseModel):
    """Paragraph-level plan for one outline section."""

    section_title: str = Field(description="Section title from the outline", min_length=1)
    paragraphs: list[ParagraphPlan] = Field(description="Paragraphs in order")


class ParagraphsOutput(BaseModel):
    """Paragraph-level plan for every section."""

    section_details: list[SectionDetail]


class HeadlinesOutput(BaseModel):
    """Title and hook options."""

    headlines: list[str] = Field(description="At least 5 headline options, 20-100 chars each")
    subheadings: list[str] = Field(description="At least 4 subheading options")
    taglines: list[str] = Field(description="At least 3 short taglines")
    social_hooks: list[str] = Field(description="At least 3 scroll-stopping opening lines")
