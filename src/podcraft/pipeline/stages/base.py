"""Base types and handler table for pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import pydantic
from pydantic import BaseModel

from podcraft.ledger import Usage
from podcraft.observability.logging import get_logger
from podcraft.observability.usage import NullUsageMeter, UsageMeter
from podcraft.pipeline.config import PipelineConfig
from podcraft.pipeline.registry import Provider, RegistryError, StageKey
from podcraft.pipeline.results import StageResult
from podcraft.prompts import PromptLoader
from podcraft.providers.base import InvokeOptions
from podcraft.validation import Attempt, Verdict, require_valid

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from podcraft.pipeline.context import ProcessingContext
    from podcraft.pipeline.registry import StageDescriptor
    from podcraft.providers.base import Invocation, ModelInvoker

log = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class StageDeps:
    """Collaborators shared by every stage handler.

    Attributes:
        invokers: One model invoker per provider back-end.
        prompts: Template loader.
        config: Pipeline configuration.
        usage_meter: Sink for per-stage usage records.
    """

    invokers: Mapping[Provider, ModelInvoker]
    prompts: PromptLoader = field(default_factory=PromptLoader)
    config: PipelineConfig = field(default_factory=PipelineConfig)
    usage_meter: UsageMeter = field(default_factory=NullUsageMeter)

    def invoker_for(self, provider: Provider) -> ModelInvoker:
        try:
            return self.invokers[provider]
        except KeyError:
            raise RegistryError(
                f"No model invoker configured for provider {provider.value!r}"
            ) from None


class StageHandler(Protocol):
    """Async function that runs one stage and returns its result."""

    async def __call__(
        self,
        stage: StageDescriptor,
        context: ProcessingContext,
        deps: StageDeps,
    ) -> StageResult: ...


# Handler table - populated by stage modules
_HANDLERS: dict[StageKey, StageHandler] = {}


def register_handler(*keys: StageKey) -> Callable[[StageHandler], StageHandler]:
    """Decorator registering a handler for one or more stages."""

    def decorator(handler: StageHandler) -> StageHandler:
        for key in keys:
            if key in _HANDLERS:
                raise RegistryError(f"Stage {key.value!r} already has a handler")
            _HANDLERS[key] = handler
        return handler

    return decorator


def get_handler(key: StageKey) -> StageHandler:
    """Get the handler of a stage.

    Raises:
        RegistryError: If no handler is registered.
    """
    try:
        return _HANDLERS[key]
    except KeyError:
        raise RegistryError(f"Stage {key.value!r} has no handler") from None


def check_handlers(keys: Iterable[StageKey] = tuple(StageKey)) -> None:
    """Ensure every stage has a handler.

    Raises:
        RegistryError: Naming every stage without one.
    """
    missing = [key.value for key in keys if key not in _HANDLERS]
    if missing:
        raise RegistryError(f"Stages without a handler: {', '.join(missing)}")


# --- Model calls ---


def invoke_options(
    stage: StageDescriptor,
    deps: StageDeps,
    *,
    system: str | None = None,
    output_schema: type[BaseModel] | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> tuple[ModelInvoker, InvokeOptions]:
    """Resolve the invoker and options for a stage call."""
    provider, model = deps.config.resolve_model(stage)
    options = InvokeOptions(
        model=model,
        temperature=stage.temperature if temperature is None else temperature,
        max_tokens=stage.max_tokens if max_tokens is None else max_tokens,
        output_schema=output_schema,
        system=system or None,
    )
    return deps.invoker_for(provider), options


async def call_model(
    stage: StageDescriptor,
    deps: StageDeps,
    template: str,
    variables: dict[str, Any],
    *,
    output_schema: type[BaseModel] | None = None,
    feedback: str | None = None,
) -> Invocation:
    """Render a template and invoke the stage's model once.

    Template ``temperature``/``max_tokens`` override the stage defaults.
    ``feedback`` from a failed attempt is appended to the user prompt.
    """
    rendered = deps.prompts.render(template, variables)
    if rendered.unresolved:
        log.warning(
            "prompt_unresolved_variables",
            stage=stage.key.value,
            template=template,
            variables=list(rendered.unresolved),
        )

    prompt = rendered.user
    if feedback:
        prompt = f"{prompt}\n\n{feedback}"

    invoker, options = invoke_options(
        stage,
        deps,
        system=rendered.system,
        output_schema=output_schema,
        temperature=rendered.temperature,
        max_tokens=rendered.max_tokens,
    )
    return await invoker.invoke(prompt, options)


def invocation_usage(invocation: Invocation) -> Usage:
    return Usage(
        input_tokens=invocation.input_tokens,
        output_tokens=invocation.output_tokens,
        cost_usd=invocation.cost_usd,
        duration_ms=invocation.duration_ms,
    )


def parse_structured(invocation: Invocation, model: type[M]) -> M | Verdict:
    """Validate structured output into ``model``.

    Returns the model, or a failing verdict describing the schema mismatch.
    """
    try:
        return model.model_validate(invocation.structured or {})
    except pydantic.ValidationError as e:
        return Verdict.from_pydantic(e)


async def structured_attempt(
    stage: StageDescriptor,
    deps: StageDeps,
    template: str,
    variables: dict[str, Any],
    model: type[M],
    feedback: str | None = None,
) -> Attempt[M | Verdict]:
    """One structured generation attempt, usable with ``generate_with_feedback``."""
    invocation = await call_model(
        stage, deps, template, variables, output_schema=model, feedback=feedback
    )
    return Attempt(parse_structured(invocation, model), invocation_usage(invocation))


def result_usage_fields(usage: Usage) -> dict[str, Any]:
    """StageResult keyword arguments carrying token and cost totals."""
    return {
        "input_tokens": usage.input_tokens,
        "output_tokens": usage.output_tokens,
        "cost_usd": usage.cost_usd,
    }


async def text_attempt(
    stage: StageDescriptor,
    deps: StageDeps,
    template: str,
    variables: dict[str, Any],
    feedback: str | None = None,
) -> Attempt[str]:
    """One free-text generation attempt, usable with ``generate_with_feedback``."""
    invocation = await call_model(stage, deps, template, variables, feedback=feedback)
    return Attempt((invocation.text or "").strip(), invocation_usage(invocation))


async def run_extraction(
    stage: StageDescriptor,
    deps: StageDeps,
    template: str,
    variables: dict[str, Any],
    model: type[M],
    validate: Callable[[M], Verdict],
    render: Callable[[M], str] | None = None,
) -> StageResult:
    """Run a structured stage whose output must be valid on the first try.

    ``render`` turns the parsed output into the stage's readable markdown.

    Raises:
        ValidationError: On a schema mismatch or a failed structural check.
    """
    invocation = await call_model(stage, deps, template, variables, output_schema=model)
    parsed = parse_structured(invocation, model)
    if isinstance(parsed, Verdict):
        require_valid(parsed)
    else:
        require_valid(validate(parsed))
    return StageResult(
        stage=stage.key,
        output_data=parsed,
        output_text=render(parsed) if render is not None else None,
        **result_usage_fields(invocation_usage(invocation)),
    )
