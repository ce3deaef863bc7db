"""Usage metering for model invocations.

One record per stage run: who was called, how much it cost, whether it
worked. Meters are written to fire-and-forget by the stage runner, so an
implementation may raise freely; the runner swallows and logs failures.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pathlib import Path


@dataclass
class UsageRecord:
    """A single metered stage invocation."""

    timestamp: str
    run_id: str
    stage: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    latency_ms: int
    success: bool
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        *,
        run_id: str,
        stage: str,
        provider: str,
        model: str,
        input_tokens: int = 0,
        output_tokens: int = 0,
        cost_usd: float = 0.0,
        latency_ms: int = 0,
        success: bool = True,
        error: str | None = None,
        **metadata: Any,
    ) -> UsageRecord:
        """Create a record stamped with the current UTC time."""
        return cls(
            timestamp=datetime.now(UTC).isoformat(),
            run_id=run_id,
            stage=stage,
            provider=provider,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost_usd,
            latency_ms=latency_ms,
            success=success,
            error=error,
            metadata=dict(metadata),
        )


class UsageMeter(Protocol):
    """Sink for usage records."""

    async def record(self, entry: UsageRecord) -> None:
        """Persist one usage record."""
        ...


class NullUsageMeter:
    """Meter that drops every record."""

    async def record(self, entry: UsageRecord) -> None:  # noqa: ARG002
        return None


class JSONLUsageMeter:
    """Usage meter appending one JSON object per line to a file.

    Attributes:
        log_path: Path to the JSONL file.
    """

    def __init__(self, log_path: Path) -> None:
        self.log_path = log_path
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    async def record(self, entry: UsageRecord) -> None:
        """Append an entry without blocking the event loop."""
        line = json.dumps(asdict(entry)) + "\n"
        await asyncio.to_thread(self._append, line)

    def _append(self, line: str) -> None:
        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(line)

    def read_entries(self) -> list[UsageRecord]:
        """Read all records from the file.

        Returns:
            Records in write order; empty if the file does not exist yet.
        """
        if not self.log_path.exists():
            return []

        entries = []
        with self.log_path.open(encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    entries.append(UsageRecord(**json.loads(line)))
        return entries
