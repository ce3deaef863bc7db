"""Preprocessing gate: decide whether a transcript needs condensing."""

from __future__ import annotations

from dataclasses import dataclass

from podcraft.ledger import estimate_tokens
from podcraft.pipeline.config import DEFAULT_PREPROCESS_THRESHOLD


@dataclass(frozen=True)
class GateDecision:
    """Whether preprocessing runs, and why."""

    needed: bool
    estimated_tokens: int
    threshold: int


def decide(transcript: str, threshold_tokens: int = DEFAULT_PREPROCESS_THRESHOLD) -> GateDecision:
    """Estimate transcript size and compare it with the threshold.

    Preprocessing is needed only when the estimate is strictly above the
    threshold.
    """
    estimated = estimate_tokens(transcript)
    return GateDecision(
        needed=estimated > threshold_tokens,
        estimated_tokens=estimated,
        threshold=threshold_tokens,
    )
