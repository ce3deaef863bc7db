"""Run a single stage: resolve, execute, normalize, time and meter it."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from podcraft.errors import PodcraftError, ProcessingError
from podcraft.observability.logging import get_logger
from podcraft.observability.tracing import bind_stage
from podcraft.observability.usage import UsageRecord
from podcraft.pipeline.registry import STAGE_REGISTRY, StageKey
from podcraft.pipeline.stages import get_handler

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from podcraft.models import Platform
    from podcraft.pipeline.context import ProcessingContext
    from podcraft.pipeline.registry import StageDescriptor, StageRegistry
    from podcraft.pipeline.results import StageResult
    from podcraft.pipeline.stages import StageDeps, StageHandler

log = get_logger(__name__)


@dataclass(frozen=True)
class _MeterTarget:
    """Who a usage record is about, fixed before the handler runs."""

    descriptor: StageDescriptor
    run_id: str
    provider: str
    model: str


class StageRunner:
    """Execute stages one at a time against a processing context.

    The runner never records results into the context; the caller decides
    what to keep.

    Attributes:
        deps: Collaborators handed to every handler.
        registry: Stage descriptors.
    """

    def __init__(
        self,
        deps: StageDeps,
        registry: StageRegistry = STAGE_REGISTRY,
        handlers: Mapping[StageKey, StageHandler] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.deps = deps
        self.registry = registry
        self._handlers = handlers
        self._clock = clock
        self._pending: set[asyncio.Task[None]] = set()

    def _handler_for(self, key: StageKey) -> StageHandler:
        if self._handlers is not None and key in self._handlers:
            return self._handlers[key]
        return get_handler(key)

    async def run(
        self,
        stage: StageKey | int | str,
        context: ProcessingContext,
        *,
        platform: Platform | str | None = None,
    ) -> StageResult:
        """Run one stage.

        Args:
            stage: Stage key, its string value, or numeric stage id.
            context: Run context; read-only to the handler.
            platform: Required with numeric id 8.

        Returns:
            The normalized StageResult with measured duration.

        Raises:
            ProcessingError: For an unknown stage (before anything runs) or a
                handler failure that is not a domain error.
            PodcraftError: Domain errors from the handler, unchanged.
        """
        try:
            descriptor = self.registry.resolve(stage, platform)
        except ProcessingError as e:
            raise ProcessingError(e.detail, run_id=context.run_id) from None
        try:
            provider, model = self.deps.config.resolve_model(descriptor)
        except ProcessingError as e:
            log.error("stage_failed", stage=descriptor.key.value, error=e.detail)
            raise ProcessingError(
                e.detail,
                stage_number=descriptor.number,
                stage_name=descriptor.name,
                run_id=context.run_id,
            ) from None
        meter = _MeterTarget(descriptor, context.run_id, provider.value, model)
        handler = self._handler_for(descriptor.key)

        log.info("stage_start", stage=descriptor.key.value, number=descriptor.number)
        start = self._clock()
        try:
            with bind_stage(descriptor.key.value):
                result = await handler(descriptor, context, self.deps)
            result = self._normalize(descriptor, result, self._elapsed_ms(start))
        except PodcraftError as e:
            self._fail(meter, e, self._elapsed_ms(start))
            raise
        except Exception as e:
            self._fail(meter, e, self._elapsed_ms(start))
            raise ProcessingError(
                str(e) or type(e).__name__,
                stage_number=descriptor.number,
                stage_name=descriptor.name,
                run_id=context.run_id,
            ) from e

        log.info(
            "stage_complete",
            stage=descriptor.key.value,
            skipped=result.skipped,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost_usd=round(result.cost_usd, 6),
            duration_ms=result.duration_ms,
            issues=len(result.validation_issues),
        )
        self._schedule_meter(meter, result=result)
        return result

    def _elapsed_ms(self, start: float) -> int:
        return int((self._clock() - start) * 1000)

    @staticmethod
    def _normalize(
        descriptor: StageDescriptor,
        result: StageResult,
        duration_ms: int,
    ) -> StageResult:
        if result.stage != descriptor.key:
            raise ValueError(
                f"handler for {descriptor.key.value!r} returned a result for {result.stage!r}"
            )
        return replace(
            result,
            input_tokens=result.input_tokens or 0,
            output_tokens=result.output_tokens or 0,
            cost_usd=result.cost_usd or 0.0,
            duration_ms=duration_ms,
            validation_issues=list(result.validation_issues or []),
        )

    def _fail(self, meter: _MeterTarget, error: Exception, duration_ms: int) -> None:
        log.error(
            "stage_failed",
            stage=meter.descriptor.key.value,
            error=str(error),
            error_type=type(error).__name__,
            duration_ms=duration_ms,
        )
        self._schedule_meter(meter, error=error, duration_ms=duration_ms)

    # -- Usage metering --------------------------------------------------------

    def _schedule_meter(
        self,
        meter: _MeterTarget,
        *,
        result: StageResult | None = None,
        error: Exception | None = None,
        duration_ms: int = 0,
    ) -> None:
        """Record usage without waiting for it; failures never reach the stage."""
        record = UsageRecord.create(
            run_id=meter.run_id,
            stage=meter.descriptor.key.value,
            provider=meter.provider,
            model=meter.model,
            input_tokens=result.input_tokens if result else 0,
            output_tokens=result.output_tokens if result else 0,
            cost_usd=result.cost_usd if result else 0.0,
            latency_ms=result.duration_ms if result else duration_ms,
            success=error is None,
            error=str(error) if error else None,
            skipped=bool(result and result.skipped),
        )
        task = asyncio.create_task(self._meter(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _meter(self, record: UsageRecord) -> None:
        try:
            await self.deps.usage_meter.record(record)
        except Exception as e:
            log.warning("usage_meter_failed", stage=record.stage, error=str(e))

    async def aclose(self) -> None:
        """Wait for outstanding usage records to be written."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
