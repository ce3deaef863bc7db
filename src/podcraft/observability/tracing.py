"""Run correlation for pipeline invocations.

Every pipeline run gets a run ID. It lives in a context variable so that
concurrent stage tasks spawned inside the run inherit it, and it is bound
into structlog's contextvars so every log line of the run carries it.

Usage:
    from podcraft.observability.tracing import run_context

    with run_context() as run_id:
        ...  # every log event here includes run_id
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

_pipeline_run_id: ContextVar[str | None] = ContextVar("pipeline_run_id", default=None)


def generate_run_id() -> str:
    """Generate a unique run ID for a pipeline invocation.

    Returns:
        UUID4 string.
    """
    return str(uuid.uuid4())


def set_pipeline_run_id(run_id: str | None) -> None:
    """Set the pipeline run ID for the current context."""
    _pipeline_run_id.set(run_id)


def get_pipeline_run_id() -> str | None:
    """Get the pipeline run ID of the current context, if any."""
    return _pipeline_run_id.get()


@contextmanager
def run_context(run_id: str | None = None) -> Iterator[str]:
    """Bind a run ID for the duration of a block.

    Args:
        run_id: Existing run ID to reuse. A fresh one is generated if omitted.

    Yields:
        The active run ID.
    """
    run_id = run_id or generate_run_id()
    token = _pipeline_run_id.set(run_id)
    structlog.contextvars.bind_contextvars(run_id=run_id)
    try:
        yield run_id
    finally:
        structlog.contextvars.unbind_contextvars("run_id")
        _pipeline_run_id.reset(token)


@contextmanager
def bind_stage(stage: str) -> Iterator[str]:
    """Tag every log event in a block with the stage producing it.

    Stages of one phase run as separate tasks, each with its own copy of
    the context, so concurrent stages never see each other's tag.
    """
    with structlog.contextvars.bound_contextvars(stage=stage):
        yield stage
