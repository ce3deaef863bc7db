"""Per-run context: the transcript, show settings and completed stage results."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel

from podcraft.errors import ProcessingError
from podcraft.models import (
    ArticleSet,
    EmailOutput,
    HeadlinesOutput,
    OutlineOutput,
    ParagraphsOutput,
    PreprocessOutput,
    QuotesOutput,
    SocialPostSet,
    SummaryOutput,
)
from podcraft.pipeline.config import EvergreenSettings, PipelineConfig
from podcraft.pipeline.registry import SOCIAL_STAGES, StageKey

if TYPE_CHECKING:
    from podcraft.pipeline.results import StageResult

M = TypeVar("M", bound=BaseModel)

OUTPUT_TYPES: dict[StageKey, type[BaseModel]] = {
    StageKey.PREPROCESS: PreprocessOutput,
    StageKey.SUMMARY: SummaryOutput,
    StageKey.QUOTES: QuotesOutput,
    StageKey.OUTLINE: OutlineOutput,
    StageKey.PARAGRAPHS: ParagraphsOutput,
    StageKey.HEADLINES: HeadlinesOutput,
    StageKey.DRAFT: ArticleSet,
    StageKey.REFINE: ArticleSet,
    **{key: SocialPostSet for key in SOCIAL_STAGES.values()},
    StageKey.EMAIL: EmailOutput,
}


class StageOutputs(Mapping[StageKey, "StageResult"]):
    """Append-only map of completed stage results.

    Each stage gets at most one entry per run. Handlers see this through
    the read-only ``Mapping`` interface; only the scheduler records.
    """

    def __init__(self) -> None:
        self._results: dict[StageKey, StageResult] = {}

    def record(self, result: StageResult) -> None:
        """Append a stage result.

        Raises:
            ProcessingError: If the stage already has a result, or its
                output model is not the one the stage produces.
        """
        if result.stage in self._results:
            raise ProcessingError(
                f"Stage {result.stage.value!r} already has a result; outputs are append-only",
                stage_name=result.stage.value,
            )
        expected = OUTPUT_TYPES[result.stage]
        if result.output_data is not None and not isinstance(result.output_data, expected):
            raise ProcessingError(
                f"Stage {result.stage.value!r} produced {type(result.output_data).__name__}, "
                f"expected {expected.__name__}",
                stage_name=result.stage.value,
            )
        self._results[result.stage] = result

    def data(self, key: StageKey, model: type[M]) -> M | None:
        """Typed structured output of a stage, or None if absent or skipped."""
        result = self._results.get(key)
        if result is None or result.output_data is None:
            return None
        if not isinstance(result.output_data, model):
            raise TypeError(
                f"Stage {key.value!r} output is {type(result.output_data).__name__}, "
                f"not {model.__name__}"
            )
        return result.output_data

    def require(self, key: StageKey, model: type[M]) -> M:
        """Typed structured output of a stage that must have completed.

        Raises:
            ProcessingError: If the stage has no structured output.
        """
        value = self.data(key, model)
        if value is None:
            raise ProcessingError(
                f"Required output of stage {key.value!r} is not available",
                stage_name=key.value,
            )
        return value

    def text(self, key: StageKey, name: str | None = None) -> str | None:
        """Free-text output of a stage.

        For multi-article stages pass ``name`` to pick one article; without
        it the first article is returned.
        """
        result = self._results.get(key)
        if result is None or result.output_text is None:
            return None
        if isinstance(result.output_text, str):
            return result.output_text
        if name is not None:
            return result.output_text.get(name)
        return next(iter(result.output_text.values()), None)

    def __getitem__(self, key: StageKey) -> StageResult:
        return self._results[key]

    def __iter__(self) -> Iterator[StageKey]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)


@dataclass
class ProcessingContext:
    """Everything a stage can read during one run.

    Attributes:
        run_id: Identifier of this run.
        raw_transcript: Transcript exactly as supplied.
        settings: Show-level settings.
        config: Pipeline configuration.
        previous_stages: Results of completed stages.
    """

    run_id: str
    raw_transcript: str
    settings: EvergreenSettings = field(default_factory=EvergreenSettings)
    config: PipelineConfig = field(default_factory=PipelineConfig)
    previous_stages: StageOutputs = field(default_factory=StageOutputs)

    @property
    def preprocessed(self) -> PreprocessOutput | None:
        return self.previous_stages.data(StageKey.PREPROCESS, PreprocessOutput)

    def working_transcript(self) -> str:
        """Transcript text for stages that only need the gist.

        The condensed digest when preprocessing ran, otherwise the raw
        transcript unchanged.
        """
        digest = self.preprocessed
        if digest is None:
            return self.raw_transcript
        return format_digest(digest)


def format_digest(digest: PreprocessOutput) -> str:
    """Render a preprocessing digest as prompt-ready text."""
    speakers = digest.speakers
    people = f"Host: {speakers.host}"
    if speakers.guest:
        people += f"\nGuest: {speakers.guest}"
        if speakers.guest_credentials:
            people += f" ({speakers.guest_credentials})"

    lines = [
        f"# {digest.episode_metadata.inferred_title}",
        "",
        people,
        f"Core message: {digest.episode_metadata.core_message}",
        "",
        "## Condensed transcript",
        "",
        digest.comprehensive_summary,
        "",
        "## Verbatim quotes",
        "",
    ]
    lines.extend(f'- "{q.quote}" ({q.speaker})' for q in digest.verbatim_quotes)
    lines += ["", "## Key topics", ""]
    lines.extend(f"- {topic}" for topic in digest.key_topics)
    return "\n".join(lines)
