"""Pydantic models for the distribute phase: platform posts and email."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class Platform(StrEnum):
    """Social platforms with their own post stage."""

    INSTAGRAM = "instagram"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"


class SocialPost(BaseModel):
    """One ready-to-publish post."""

    type: str = Field(description="Post format, e.g. quote, insight, question, story")
    content: str = Field(description="Post text")
    hashtags: list[str] = Field(default_factory=list)


class SocialPostSet(BaseModel):
    """Posts for one platform."""

    platform: Platform
    posts: list[SocialPost]


class EmailOutput(BaseModel):
    """Newsletter content for the episode."""

    subject_lines: list[str] = Field(description="At least 5 subject line options")
    preview_text: list[str] = Field(description="At least 3 preview text options")
    email_body: str = Field(description="Full newsletter body in markdown")
