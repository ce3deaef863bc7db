"""Tests for stage outputs, the processing context and canonical accessors."""

from __future__ import annotations

import pytest

from podcraft.errors import ProcessingError
from podcraft.models import (
    Article,
    ArticleSet,
    PreprocessOutput,
    QuotesOutput,
    SummaryOutput,
)
from podcraft.pipeline.canonical import episode_summary, quote_set
from podcraft.pipeline.context import ProcessingContext, StageOutputs
from podcraft.pipeline.registry import StageKey
from podcraft.pipeline.results import StageResult
from tests.fixtures.fake_invoker import preprocess_payload, quotes_payload, summary_payload


def summary_result() -> StageResult:
    return StageResult(
        stage=StageKey.SUMMARY,
        output_data=SummaryOutput.model_validate(summary_payload()),
    )


def quotes_result() -> StageResult:
    return StageResult(
        stage=StageKey.QUOTES,
        output_data=QuotesOutput.model_validate(quotes_payload()),
    )


class TestStageResult:
    def test_requires_output_unless_skipped(self) -> None:
        with pytest.raises(ValueError, match="no output"):
            StageResult(stage=StageKey.OUTLINE)

    def test_skip(self) -> None:
        result = StageResult.skip(StageKey.PREPROCESS, reason="short")
        assert result.skipped
        assert result.output_data is None
        assert result.metadata == {"reason": "short"}

    def test_usage(self) -> None:
        result = StageResult(
            stage=StageKey.DRAFT,
            output_text="text",
            input_tokens=3,
            output_tokens=4,
            cost_usd=0.5,
            duration_ms=9,
        )
        assert result.usage.total_tokens == 7
        assert result.usage.duration_ms == 9


class TestStageOutputs:
    def test_record_and_read(self) -> None:
        outputs = StageOutputs()
        outputs.record(summary_result())
        assert StageKey.SUMMARY in outputs
        assert len(outputs) == 1
        data = outputs.data(StageKey.SUMMARY, SummaryOutput)
        assert data is not None
        assert data.episode_crux.startswith("Small")

    def test_append_only(self) -> None:
        outputs = StageOutputs()
        outputs.record(summary_result())
        with pytest.raises(ProcessingError, match="append-only"):
            outputs.record(summary_result())

    def test_rejects_wrong_output_type(self) -> None:
        outputs = StageOutputs()
        wrong = StageResult(
            stage=StageKey.SUMMARY,
            output_data=QuotesOutput.model_validate(quotes_payload()),
        )
        with pytest.raises(ProcessingError, match="expected SummaryOutput"):
            outputs.record(wrong)

    def test_data_type_mismatch(self) -> None:
        outputs = StageOutputs()
        outputs.record(summary_result())
        with pytest.raises(TypeError):
            outputs.data(StageKey.SUMMARY, QuotesOutput)

    def test_missing_and_skipped_read_as_none(self) -> None:
        outputs = StageOutputs()
        outputs.record(StageResult.skip(StageKey.PREPROCESS))
        assert outputs.data(StageKey.PREPROCESS, PreprocessOutput) is None
        assert outputs.data(StageKey.SUMMARY, SummaryOutput) is None

    def test_require_missing(self) -> None:
        with pytest.raises(ProcessingError, match="not available"):
            StageOutputs().require(StageKey.OUTLINE, SummaryOutput)

    def test_text_by_name(self) -> None:
        outputs = StageOutputs()
        outputs.record(
            StageResult(
                stage=StageKey.DRAFT,
                output_data=ArticleSet(
                    mode="dual",
                    articles=[Article(kind="episode_recap"), Article(kind="topic_article")],
                ),
                output_text={"episode_recap": "recap", "topic_article": "topic"},
            )
        )
        assert outputs.text(StageKey.DRAFT, "topic_article") == "topic"
        assert outputs.text(StageKey.DRAFT) == "recap"
        assert outputs.text(StageKey.REFINE) is None


class TestProcessingContext:
    def test_working_transcript_is_raw_without_digest(self) -> None:
        context = ProcessingContext(run_id="r", raw_transcript="hello there")
        assert context.preprocessed is None
        assert context.working_transcript() == "hello there"

    def test_working_transcript_uses_digest(self) -> None:
        context = ProcessingContext(run_id="r", raw_transcript="raw words")
        context.previous_stages.record(
            StageResult(
                stage=StageKey.PREPROCESS,
                output_data=PreprocessOutput.model_validate(preprocess_payload()),
            )
        )
        text = context.working_transcript()
        assert "raw words" not in text
        assert "# Small Habits" in text
        assert "Guest: Lee (coach)" in text
        assert "- habits" in text


class TestCanonical:
    def test_reads_from_producers(self) -> None:
        context = ProcessingContext(run_id="r", raw_transcript="t")
        context.previous_stages.record(summary_result())
        context.previous_stages.record(quotes_result())
        assert episode_summary(context).summary
        assert len(quote_set(context).key_quotes) == 6

    def test_missing_producer_names_stage(self) -> None:
        context = ProcessingContext(run_id="run-1", raw_transcript="t")
        with pytest.raises(ProcessingError) as exc_info:
            quote_set(context)
        assert exc_info.value.stage_number == 2
        assert exc_info.value.run_id == "run-1"

    def test_digest_is_never_the_summary(self) -> None:
        context = ProcessingContext(run_id="r", raw_transcript="t")
        context.previous_stages.record(
            StageResult(
                stage=StageKey.PREPROCESS,
                output_data=PreprocessOutput.model_validate(preprocess_payload()),
            )
        )
        with pytest.raises(ProcessingError, match="episode_summary"):
            episode_summary(context)
