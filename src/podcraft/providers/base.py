"""Model invoker protocol, normalized result types, and provider errors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from podcraft.errors import PodcraftError

if TYPE_CHECKING:
    from pydantic import BaseModel


TOKEN_LIMIT_MESSAGE = "input exceeds model context limit; shorten content"

# Substrings providers use when a prompt does not fit the context window
_TOKEN_LIMIT_MARKERS = (
    "context_length_exceeded",
    "maximum context length",
    "context window",
    "prompt is too long",
    "too many tokens",
    "input is too long",
    "exceeds the context",
    "max_tokens_exceeded",
    "request too large",
)

_TRANSIENT_STATUS = frozenset({408, 409, 425, 429})


class StatusClass(StrEnum):
    """Retry classification of a provider failure."""

    TRANSIENT = "transient"
    TERMINAL = "terminal"


class ProviderError(PodcraftError):
    """Raised when a model provider call fails.

    Attributes:
        provider: Provider identifier (openai, anthropic).
        status_class: Whether retrying can help.
        is_token_limit: True when the input did not fit the model's context.
        status_code: HTTP status code, when the provider returned one.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status_class: StatusClass = StatusClass.TERMINAL,
        is_token_limit: bool = False,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.message = message
        self.status_class = status_class
        self.is_token_limit = is_token_limit
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}")

    @property
    def is_transient(self) -> bool:
        """Check if the failure is worth retrying."""
        return self.status_class is StatusClass.TRANSIENT


@dataclass(frozen=True)
class InvokeOptions:
    """Per-call options for a model invocation.

    Attributes:
        model: Model identifier.
        temperature: Sampling temperature.
        max_tokens: Upper bound on generated tokens.
        output_schema: Pydantic model to constrain the output to, if any.
        system: Optional system prompt.
    """

    model: str
    temperature: float = 0.7
    max_tokens: int = 4096
    output_schema: type[BaseModel] | None = None
    system: str | None = None


@dataclass(frozen=True)
class Invocation:
    """Normalized result of one model invocation.

    Exactly one of ``text``/``structured`` is populated depending on
    whether an output schema was requested.
    """

    text: str | None = None
    structured: dict[str, Any] | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0


class ModelInvoker(Protocol):
    """Sends one prompt to a model provider and returns usage-annotated output."""

    async def invoke(self, prompt: str, options: InvokeOptions) -> Invocation:
        """Invoke the model.

        Args:
            prompt: Fully rendered user prompt.
            options: Model selection and generation parameters.

        Returns:
            Normalized invocation result.

        Raises:
            ProviderError: If the provider call fails.
        """
        ...


def extract_http_status_code(error: BaseException) -> int | None:
    """Find an HTTP status code on a provider SDK exception, if any."""
    for field_name in ("status_code", "status", "http_status"):
        parsed = _to_int_or_none(getattr(error, field_name, None))
        if parsed is not None:
            return parsed

    response = getattr(error, "response", None)
    if response is not None:
        parsed = _to_int_or_none(getattr(response, "status_code", None))
        if parsed is not None:
            return parsed

    return None


def is_token_limit_error(error: BaseException) -> bool:
    """Check whether an error reports an over-long prompt."""
    parts = [str(error).lower()]
    code = getattr(error, "code", None)
    if isinstance(code, str):
        parts.append(code.lower())
    body = getattr(error, "body", None)
    if body is not None:
        parts.append(str(body).lower())
    text = " ".join(parts)
    return any(marker in text for marker in _TOKEN_LIMIT_MARKERS)


def is_transient_error(error: BaseException) -> bool:
    """Check whether an error is worth retrying with backoff.

    Timeouts, connection failures, rate limits and 5xx responses are
    transient. Walks ``__cause__`` so LangChain-wrapped errors are detected.
    """
    if isinstance(error, ProviderError):
        return error.is_transient

    if isinstance(
        error,
        (
            httpx.NetworkError,
            httpx.TimeoutException,
            ConnectionError,
            TimeoutError,
        ),
    ):
        return True

    status_code = extract_http_status_code(error)
    if status_code is not None:
        return status_code in _TRANSIENT_STATUS or 500 <= status_code <= 599

    class_name = error.__class__.__name__.lower()
    if "timeout" in class_name or "connection" in class_name or "ratelimit" in class_name:
        return True

    cause = error.__cause__
    if cause is not None:
        return is_transient_error(cause)
    return False


def classify_provider_exception(provider: str, error: BaseException) -> ProviderError:
    """Convert an arbitrary provider SDK exception into a ProviderError.

    Token-limit failures get a dedicated, actionable message instead of the
    raw provider text.

    Args:
        provider: Provider identifier.
        error: Exception raised by the provider SDK.

    Returns:
        Classified ProviderError (not raised).
    """
    if isinstance(error, ProviderError):
        return error

    status_code = extract_http_status_code(error)

    if is_token_limit_error(error):
        return ProviderError(
            provider,
            TOKEN_LIMIT_MESSAGE,
            status_class=StatusClass.TERMINAL,
            is_token_limit=True,
            status_code=status_code,
        )

    status_class = StatusClass.TRANSIENT if is_transient_error(error) else StatusClass.TERMINAL
    detail = str(error) or error.__class__.__name__
    if status_code is not None:
        detail = f"HTTP {status_code}: {detail}"
    return ProviderError(
        provider,
        detail,
        status_class=status_class,
        status_code=status_code,
    )


def _to_int_or_none(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
