"""Per-model token pricing.

Prices are USD per one million tokens. Update when providers change rates.
"""

from __future__ import annotations

from dataclasses import dataclass

from podcraft.observability.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ModelPrice:
    """Price of a model per one million tokens."""

    provider: str
    input: float
    output: float


MODEL_PRICING: dict[str, ModelPrice] = {
    # OpenAI
    "gpt-5-mini": ModelPrice("openai", 0.25, 2.00),
    "gpt-5": ModelPrice("openai", 1.25, 10.00),
    "gpt-4o-mini": ModelPrice("openai", 0.15, 0.60),
    "gpt-4o": ModelPrice("openai", 2.50, 10.00),
    "gpt-4-turbo": ModelPrice("openai", 10.00, 30.00),
    "gpt-3.5-turbo": ModelPrice("openai", 0.50, 1.50),
    # Anthropic
    "claude-sonnet-4": ModelPrice("anthropic", 3.00, 15.00),
    "claude-3-5-sonnet": ModelPrice("anthropic", 3.00, 15.00),
    "claude-opus-4": ModelPrice("anthropic", 15.00, 75.00),
    "claude-3-5-haiku": ModelPrice("anthropic", 0.80, 4.00),
}

# Longest keys first so "gpt-4o-mini" wins over "gpt-4o"
_LOOKUP_ORDER = sorted(MODEL_PRICING, key=len, reverse=True)


def get_price(model: str) -> ModelPrice | None:
    """Find the price entry for a model identifier.

    Matches the longest known model family contained in ``model``, so dated
    snapshots like ``claude-sonnet-4-20250514`` resolve to their family.
    """
    model_lower = model.lower()
    for key in _LOOKUP_ORDER:
        if key in model_lower:
            return MODEL_PRICING[key]
    return None


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate the USD cost of one call.

    Unknown models cost nothing; a warning is logged so the gap is visible.
    """
    price = get_price(model)
    if price is None:
        log.warning("pricing_unknown_model", model=model)
        return 0.0
    return (input_tokens / 1_000_000) * price.input + (output_tokens / 1_000_000) * price.output
