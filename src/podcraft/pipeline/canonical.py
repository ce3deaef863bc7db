"""Accessors for canonical artifacts.

The episode summary and the quote set each have exactly one producing
stage. Later stages read them only through these accessors, never from a
preprocessing digest or a stage's own re-extraction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel

from podcraft.errors import ProcessingError
from podcraft.models import QuotesOutput, SummaryOutput
from podcraft.pipeline.registry import STAGE_REGISTRY, CanonicalArtifact

if TYPE_CHECKING:
    from podcraft.pipeline.context import ProcessingContext

M = TypeVar("M", bound=BaseModel)


def _canonical(context: ProcessingContext, artifact: CanonicalArtifact, model: type[M]) -> M:
    producer = STAGE_REGISTRY.producer_of(artifact)
    value = context.previous_stages.data(producer.key, model)
    if value is None:
        raise ProcessingError(
            f"Canonical {artifact.value} is not available: stage {producer.number} "
            f"({producer.name}) has not completed",
            stage_number=producer.number,
            stage_name=producer.name,
            run_id=context.run_id,
        )
    return value


def episode_summary(context: ProcessingContext) -> SummaryOutput:
    """The episode summary from its producing stage.

    Raises:
        ProcessingError: If the summary stage has not completed.
    """
    return _canonical(context, CanonicalArtifact.EPISODE_SUMMARY, SummaryOutput)


def quote_set(context: ProcessingContext) -> QuotesOutput:
    """The quote set from its producing stage.

    Raises:
        ProcessingError: If the quotes stage has not completed.
    """
    return _canonical(context, CanonicalArtifact.QUOTE_SET, QuotesOutput)
