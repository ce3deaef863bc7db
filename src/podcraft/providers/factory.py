"""Factory for LangChain chat models.

Uses LangChain's init_chat_model abstraction for unified provider
instantiation. Provider-specific checks (API keys, parameters some models
reject) are applied as pre-processing before the unified call.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from podcraft.observability.logging import get_logger
from podcraft.providers.base import ProviderError

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

log = get_logger(__name__)

KNOWN_PROVIDERS = frozenset({"openai", "anthropic"})

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

_PACKAGES = {
    "openai": "langchain-openai",
    "anthropic": "langchain-anthropic",
}

# OpenAI reasoning families only accept their default temperature
_FIXED_TEMPERATURE_PREFIXES = ("o1", "o3", "o4", "gpt-5")


def create_chat_model(
    provider_name: str,
    model: str,
    **kwargs: Any,
) -> BaseChatModel:
    """Create a LangChain chat model.

    Args:
        provider_name: Provider identifier (openai, anthropic).
        model: Model name/identifier.
        **kwargs: Additional model options (temperature, max_tokens, timeout, api_key).

    Returns:
        Configured BaseChatModel.

    Raises:
        ProviderError: If the provider is unknown, misconfigured, or not installed.
    """
    provider = provider_name.lower().strip()

    if provider not in KNOWN_PROVIDERS:
        log.error("provider_unknown", provider=provider)
        raise ProviderError(provider, f"Unknown provider: {provider}")

    kwargs = _preprocess_provider_kwargs(provider, model, kwargs)

    try:
        chat_model = _init_chat_model(provider, model, **kwargs)
    except ImportError as e:
        package = _PACKAGES[provider]
        log.error("provider_import_error", provider=provider, package=package)
        raise ProviderError(provider, f"{package} not installed. Run: pip install {package}") from e

    log.debug("chat_model_created", provider=provider, model=model)
    return chat_model


def _init_chat_model(provider: str, model: str, **kwargs: Any) -> BaseChatModel:
    """Call init_chat_model; raises ImportError if the provider package is missing."""
    from langchain.chat_models import init_chat_model

    # init_chat_model returns Any, but we know it returns BaseChatModel
    result: BaseChatModel = init_chat_model(model=model, model_provider=provider, **kwargs)
    return result


def _preprocess_provider_kwargs(
    provider: str,
    model: str,
    kwargs: dict[str, Any],
) -> dict[str, Any]:
    """Resolve API keys and drop parameters the model rejects.

    Args:
        provider: Normalized provider name.
        model: Model name.
        kwargs: Input kwargs (copied, not mutated).

    Returns:
        Processed kwargs.

    Raises:
        ProviderError: If the API key is missing.
    """
    kwargs = dict(kwargs)

    env_var = _API_KEY_ENV[provider]
    api_key = kwargs.get("api_key") or os.getenv(env_var)
    if not api_key:
        log.error("provider_config_error", provider=provider, missing=env_var)
        raise ProviderError(provider, f"API key required. Set {env_var} environment variable.")
    kwargs["api_key"] = api_key

    if provider == "openai" and model.lower().startswith(_FIXED_TEMPERATURE_PREFIXES):
        if kwargs.pop("temperature", None) is not None:
            log.debug("model_param_dropped", provider=provider, model=model, param="temperature")

    return kwargs
