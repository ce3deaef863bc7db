"""Cost, token and latency aggregation.

Two composition rules, one function each:

- ``sequential``: steps that ran one after another. Everything adds up.
- ``parallel``: branches that ran concurrently. Tokens and cost add up,
  wall-clock duration is the slowest branch.

Both are pure and order-independent, so concurrent branch results can be
merged in any order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from podcraft.providers.pricing import calculate_cost

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

CHARS_PER_TOKEN = 4


class HasUsage(Protocol):
    @property
    def usage(self) -> Usage: ...


@dataclass(frozen=True)
class Usage:
    """Token, cost and duration totals."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def usage(self) -> Usage:
        return self

    @classmethod
    def priced(
        cls,
        model: str,
        input_tokens: int,
        output_tokens: int,
        duration_ms: int = 0,
    ) -> Usage:
        """Build a usage entry, pricing the tokens for ``model``."""
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=calculate_cost(model, input_tokens, output_tokens),
            duration_ms=duration_ms,
        )


def _usages(parts: Iterable[HasUsage]) -> list[Usage]:
    return [part.usage for part in parts]


def sequential(parts: Iterable[HasUsage]) -> Usage:
    """Aggregate steps that ran one after another: sum everything."""
    usages = _usages(parts)
    return Usage(
        input_tokens=sum(u.input_tokens for u in usages),
        output_tokens=sum(u.output_tokens for u in usages),
        cost_usd=math.fsum(u.cost_usd for u in usages),
        duration_ms=sum(u.duration_ms for u in usages),
    )


def parallel(parts: Iterable[HasUsage]) -> Usage:
    """Aggregate concurrent branches: sum tokens and cost, max duration."""
    usages = _usages(parts)
    return Usage(
        input_tokens=sum(u.input_tokens for u in usages),
        output_tokens=sum(u.output_tokens for u in usages),
        cost_usd=math.fsum(u.cost_usd for u in usages),
        duration_ms=max((u.duration_ms for u in usages), default=0),
    )


def estimate_tokens(text: str | None) -> int:
    """Estimate tokens at roughly four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(frozen=True)
class StageEstimate:
    """Projected usage of one stage."""

    stage: str
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float


@dataclass(frozen=True)
class RunEstimate:
    """Projected usage of a whole run."""

    stages: tuple[StageEstimate, ...]

    @property
    def total_cost_usd(self) -> float:
        return math.fsum(s.cost_usd for s in self.stages)

    @property
    def total_tokens(self) -> int:
        return sum(s.input_tokens + s.output_tokens for s in self.stages)


def estimate_run_cost(
    transcript: str,
    stage_budgets: Mapping[str, tuple[str, int, int, bool]],
) -> RunEstimate:
    """Project the cost of a run before executing it.

    Args:
        transcript: Raw transcript text.
        stage_budgets: Per stage name, ``(model, prompt_overhead_tokens,
            expected_output_tokens, reads_transcript)``. Stages that read the
            transcript get its estimated size added to their input.

    Returns:
        Per-stage estimates in the given order.
    """
    transcript_tokens = estimate_tokens(transcript)
    stages = []
    for stage, (model, overhead, output_tokens, reads_transcript) in stage_budgets.items():
        input_tokens = overhead + (transcript_tokens if reads_transcript else 0)
        stages.append(
            StageEstimate(
                stage=stage,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=calculate_cost(model, input_tokens, output_tokens),
            )
        )
    return RunEstimate(stages=tuple(stages))
