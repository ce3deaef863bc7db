"""Prompt templates for pipeline stages."""

from podcraft.prompts.loader import (
    DEFAULT_TEMPLATES_PATH,
    PromptLoader,
    PromptTemplate,
    RenderedPrompt,
    TemplateCache,
    TemplateNotFoundError,
    TemplateParseError,
)

__all__ = [
    "DEFAULT_TEMPLATES_PATH",
    "PromptLoader",
    "PromptTemplate",
    "RenderedPrompt",
    "TemplateCache",
    "TemplateNotFoundError",
    "TemplateParseError",
]
