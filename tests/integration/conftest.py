"""Integration test configuration and fixtures.

Pipeline tests run end to end against a scripted invoker. Live provider
tests are skipped automatically if the provider is not configured.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env file at import time so provider availability checks work
load_dotenv()


def _openai_available() -> bool:
    """Check if OpenAI API key is configured."""
    return bool(os.getenv("OPENAI_API_KEY"))


def _anthropic_available() -> bool:
    """Check if Anthropic API key is configured."""
    return bool(os.getenv("ANTHROPIC_API_KEY"))


# Skip markers
requires_openai = pytest.mark.skipif(
    not _openai_available(),
    reason="OPENAI_API_KEY not set",
)

requires_anthropic = pytest.mark.skipif(
    not _anthropic_available(),
    reason="ANTHROPIC_API_KEY not set",
)


@pytest.fixture
def sample_transcript() -> str:
    """A short two-person episode, well under the preprocessing threshold."""
    path = Path(__file__).parent.parent / "fixtures" / "sample_transcript.txt"
    return path.read_text(encoding="utf-8")


@pytest.fixture
def long_transcript(sample_transcript: str) -> str:
    """The sample episode repeated until it needs preprocessing."""
    return "\n\n".join([sample_transcript] * 14)
