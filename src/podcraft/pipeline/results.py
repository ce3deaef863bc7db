"""Stage and phase result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from podcraft.ledger import Usage
from podcraft.pipeline.registry import StageKey


@dataclass(frozen=True)
class StageResult:
    """Outcome of running one stage.

    A stage that was not skipped always carries ``output_data``,
    ``output_text`` or both.

    Attributes:
        stage: Stage that produced this result.
        output_data: Structured output model, if any.
        output_text: Free text, or named texts for multi-article stages.
        input_tokens: Prompt tokens across every attempt.
        output_tokens: Completion tokens across every attempt.
        cost_usd: Cost across every attempt.
        duration_ms: Wall-clock time measured by the runner.
        skipped: The stage decided it had nothing to do.
        validation_issues: Quality problems accepted on a best-effort result.
        metadata: Extra facts a stage reports (attempt count, fallback use).
    """

    stage: StageKey
    output_data: BaseModel | None = None
    output_text: str | dict[str, str] | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0
    skipped: bool = False
    validation_issues: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.skipped and self.output_data is None and self.output_text is None:
            raise ValueError(
                f"Stage {self.stage.value!r} returned no output; "
                "set output_data or output_text, or mark the result skipped"
            )

    @property
    def usage(self) -> Usage:
        return Usage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cost_usd=self.cost_usd,
            duration_ms=self.duration_ms,
        )

    @classmethod
    def skip(cls, stage: StageKey, **metadata: Any) -> StageResult:
        """Result of a stage that had nothing to do."""
        return cls(stage=stage, skipped=True, metadata=dict(metadata))


class PhaseStatus(StrEnum):
    """Lifecycle of a phase group."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PhaseReport:
    """Status and usage of one phase group."""

    name: str
    status: PhaseStatus = PhaseStatus.PENDING
    stages: tuple[StageKey, ...] = ()
    usage: Usage = field(default_factory=Usage)
    error: str | None = None
