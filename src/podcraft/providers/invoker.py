"""LangChain-backed model invoker.

Turns one prompt plus ``InvokeOptions`` into a normalized ``Invocation``:
builds (and caches) the chat model, applies the request timeout, retries
transient failures with backoff, reads token usage off the response and
prices it.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

from podcraft.errors import ValidationError
from podcraft.observability.logging import get_logger
from podcraft.providers.base import Invocation, InvokeOptions
from podcraft.providers.factory import create_chat_model
from podcraft.providers.pricing import calculate_cost
from podcraft.providers.retry import RetryPolicy, call_with_retry
from podcraft.providers.structured_output import with_structured_output

if TYPE_CHECKING:
    from collections.abc import Callable

    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import BaseMessage

log = get_logger(__name__)


def extract_usage(result: object) -> tuple[int, int]:
    """Extract (input_tokens, output_tokens) from a model response.

    Unwraps the raw AIMessage when ``include_raw=True`` was used and reads
    ``usage_metadata``, falling back to OpenAI-style ``response_metadata``.
    """
    if isinstance(result, dict) and "raw" in result:
        result = result["raw"]

    usage = getattr(result, "usage_metadata", None)
    if usage:
        return int(usage.get("input_tokens") or 0), int(usage.get("output_tokens") or 0)

    metadata = getattr(result, "response_metadata", None) or {}
    token_usage = metadata.get("token_usage") or metadata.get("usage") or {}
    return (
        int(token_usage.get("prompt_tokens") or token_usage.get("input_tokens") or 0),
        int(token_usage.get("completion_tokens") or token_usage.get("output_tokens") or 0),
    )


def _message_text(message: object) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Anthropic returns content blocks
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return str(content)


class LangChainInvoker:
    """Model invoker for one provider back-end.

    Attributes:
        provider: Provider identifier (openai, anthropic).
        retry_policy: Backoff parameters for transient failures.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        provider: str,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float = 300.0,
        model_factory: Callable[..., BaseChatModel] = create_chat_model,
    ) -> None:
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_seconds = timeout_seconds
        self._model_factory = model_factory
        self._models: dict[tuple[str, float, int], BaseChatModel] = {}

    def _get_model(self, options: InvokeOptions) -> BaseChatModel:
        key = (options.model, options.temperature, options.max_tokens)
        if key not in self._models:
            self._models[key] = self._model_factory(
                self.provider,
                options.model,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        return self._models[key]

    async def invoke(self, prompt: str, options: InvokeOptions) -> Invocation:
        """Invoke the model once, retrying transient provider failures.

        Raises:
            ProviderError: Classified provider failure after retries.
            ValidationError: Structured output could not be parsed.
        """
        model = self._get_model(options)
        runnable: Any = (
            with_structured_output(model, options.output_schema, self.provider)
            if options.output_schema is not None
            else model
        )

        messages: list[BaseMessage] = []
        if options.system:
            messages.append(SystemMessage(content=options.system))
        messages.append(HumanMessage(content=prompt))

        async def _call() -> Any:
            async with asyncio.timeout(self.timeout_seconds):
                return await runnable.ainvoke(messages)

        start = time.perf_counter()
        result = await call_with_retry(_call, provider=self.provider, policy=self.retry_policy)
        duration_ms = int((time.perf_counter() - start) * 1000)

        input_tokens, output_tokens = extract_usage(result)
        cost = calculate_cost(options.model, input_tokens, output_tokens)

        text: str | None = None
        structured: dict[str, Any] | None = None
        if options.output_schema is not None:
            structured = self._unwrap_structured(result, options.output_schema.__name__)
        else:
            text = _message_text(result)

        log.debug(
            "model_invoked",
            provider=self.provider,
            model=options.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=duration_ms,
        )
        return Invocation(
            text=text,
            structured=structured,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            duration_ms=duration_ms,
        )

    @staticmethod
    def _unwrap_structured(result: Any, schema_name: str) -> dict[str, Any]:
        parsed = result.get("parsed") if isinstance(result, dict) and "raw" in result else result
        error = result.get("parsing_error") if isinstance(result, dict) else None
        if isinstance(parsed, BaseModel):
            return parsed.model_dump()
        if isinstance(parsed, dict):
            return parsed
        raise ValidationError(schema_name, f"model returned no parseable output ({error})")
