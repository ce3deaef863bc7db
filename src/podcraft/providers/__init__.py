"""Model provider integrations using LangChain."""

from podcraft.providers.base import (
    TOKEN_LIMIT_MESSAGE,
    Invocation,
    InvokeOptions,
    ModelInvoker,
    ProviderError,
    StatusClass,
    classify_provider_exception,
    is_transient_error,
)
from podcraft.providers.factory import create_chat_model
from podcraft.providers.invoker import LangChainInvoker
from podcraft.providers.json_parsing import ParseOutcome, parse_json_object
from podcraft.providers.pricing import calculate_cost
from podcraft.providers.retry import RetryPolicy, call_with_retry

__all__ = [
    "TOKEN_LIMIT_MESSAGE",
    "Invocation",
    "InvokeOptions",
    "LangChainInvoker",
    "ModelInvoker",
    "ParseOutcome",
    "ProviderError",
    "RetryPolicy",
    "StatusClass",
    "calculate_cost",
    "call_with_retry",
    "classify_provider_exception",
    "create_chat_model",
    "is_transient_error",
    "parse_json_object",
]
