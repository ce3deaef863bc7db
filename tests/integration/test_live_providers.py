"""Smoke tests against real model providers.

Each test makes one small structured call and checks the invoker reports
usage the way the pipeline expects. Skipped without provider credentials.
"""

from __future__ import annotations

import pytest
from pydantic import BaseModel, Field

from podcraft.providers.base import InvokeOptions
from podcraft.providers.invoker import LangChainInvoker
from tests.integration.conftest import requires_anthropic, requires_openai

pytestmark = pytest.mark.integration


class Crux(BaseModel):
    """One-line takeaway of a short text."""

    crux: str = Field(description="The single main idea in one sentence", min_length=1)


PROMPT = (
    "Lee: Missing once is an accident. Missing twice is the start of a new habit.\n\n"
    "State the main idea of this exchange."
)


@requires_openai
@pytest.mark.asyncio
async def test_openai_structured_call() -> None:
    invoker = LangChainInvoker("openai")
    result = await invoker.invoke(PROMPT, InvokeOptions(model="gpt-5-mini", output_schema=Crux))

    assert Crux.model_validate(result.structured).crux
    assert result.input_tokens > 0
    assert result.cost_usd > 0


@requires_anthropic
@pytest.mark.asyncio
async def test_anthropic_text_call() -> None:
    invoker = LangChainInvoker("anthropic")
    result = await invoker.invoke(
        PROMPT, InvokeOptions(model="claude-3-5-haiku-20241022", max_tokens=200)
    )

    assert result.text
    assert result.output_tokens > 0
