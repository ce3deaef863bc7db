"""Tests for the stage registry and phase plan."""

from __future__ import annotations

from dataclasses import replace

import pytest

from podcraft.errors import ProcessingError
from podcraft.models import Platform
from podcraft.pipeline.registry import (
    DEFAULT_DESCRIPTORS,
    PHASE_PLAN,
    STAGE_REGISTRY,
    CanonicalArtifact,
    Phase,
    PhaseGroup,
    RegistryError,
    StageKey,
    StageKind,
    StageRegistry,
    build_registry,
)


def test_every_stage_is_registered_once() -> None:
    assert sorted(STAGE_REGISTRY.keys) == sorted(StageKey)
    assert len(STAGE_REGISTRY) == len(StageKey)


def test_default_plan_is_valid() -> None:
    assert STAGE_REGISTRY.validate(PHASE_PLAN) == []


def test_plan_group_order() -> None:
    assert [g.name for g in PHASE_PLAN] == [
        "pregate",
        "extract",
        "plan",
        "plan_details",
        "write",
        "write_refine",
        "distribute",
    ]
    assert set(PHASE_PLAN[1].stages) == {StageKey.SUMMARY, StageKey.QUOTES}


def test_canonical_producers() -> None:
    assert STAGE_REGISTRY.producer_of(CanonicalArtifact.EPISODE_SUMMARY).key is StageKey.SUMMARY
    assert STAGE_REGISTRY.producer_of(CanonicalArtifact.QUOTE_SET).key is StageKey.QUOTES


def test_stage_kinds() -> None:
    assert STAGE_REGISTRY.get(StageKey.PREPROCESS).kind is StageKind.GATE
    assert STAGE_REGISTRY.get(StageKey.QUOTES).kind is StageKind.EXTRACTION
    assert STAGE_REGISTRY.get(StageKey.DRAFT).kind is StageKind.GENERATIVE


class TestRegistration:
    def test_duplicate_key_rejected(self) -> None:
        registry = StageRegistry()
        registry.register(DEFAULT_DESCRIPTORS[1])
        with pytest.raises(RegistryError, match="Duplicate"):
            registry.register(DEFAULT_DESCRIPTORS[1])

    def test_second_canonical_producer_rejected(self) -> None:
        registry = StageRegistry()
        summary = STAGE_REGISTRY.get(StageKey.SUMMARY)
        registry.register(summary)
        rival = replace(
            STAGE_REGISTRY.get(StageKey.PREPROCESS),
            produces=(CanonicalArtifact.EPISODE_SUMMARY,),
        )
        with pytest.raises(RegistryError, match="already produced"):
            registry.register(rival)

    def test_number_out_of_range_rejected(self) -> None:
        registry = StageRegistry()
        with pytest.raises(RegistryError, match="outside"):
            registry.register(replace(DEFAULT_DESCRIPTORS[0], number=12))


class TestPlanValidation:
    def test_dependency_in_same_group(self) -> None:
        plan = (
            PhaseGroup("pregate", Phase.PREGATE, (StageKey.PREPROCESS,)),
            PhaseGroup(
                "everything",
                Phase.EXTRACT,
                tuple(k for k in StageKey if k is not StageKey.PREPROCESS),
            ),
        )
        errors = STAGE_REGISTRY.validate(plan)
        assert any("not in an earlier phase group" in e for e in errors)

    def test_unscheduled_stage(self) -> None:
        errors = STAGE_REGISTRY.validate(PHASE_PLAN[:-1])
        assert any("social_instagram" in e and "not scheduled" in e for e in errors)

    def test_stage_in_two_groups(self) -> None:
        plan = (*PHASE_PLAN, PhaseGroup("again", Phase.DISTRIBUTE, (StageKey.EMAIL,)))
        errors = STAGE_REGISTRY.validate(plan)
        assert any("more than one phase group" in e for e in errors)

    def test_build_registry_raises_on_bad_plan(self) -> None:
        with pytest.raises(RegistryError, match="Invalid phase plan"):
            build_registry(plan=PHASE_PLAN[1:])


class TestResolve:
    def test_by_key_value_and_number(self) -> None:
        assert STAGE_REGISTRY.resolve(StageKey.OUTLINE).number == 3
        assert STAGE_REGISTRY.resolve("headlines").key is StageKey.HEADLINES
        assert STAGE_REGISTRY.resolve(0).key is StageKey.PREPROCESS
        assert STAGE_REGISTRY.resolve(9).key is StageKey.EMAIL

    def test_platform_stage_needs_platform(self) -> None:
        with pytest.raises(ProcessingError, match="requires a platform"):
            STAGE_REGISTRY.resolve(8)
        assert STAGE_REGISTRY.resolve(8, "twitter").key is StageKey.SOCIAL_TWITTER
        assert STAGE_REGISTRY.resolve(8, Platform.LINKEDIN).key is StageKey.SOCIAL_LINKEDIN

    def test_invalid_platform(self) -> None:
        with pytest.raises(ProcessingError, match="Invalid platform"):
            STAGE_REGISTRY.resolve(8, "myspace")

    @pytest.mark.parametrize("ref", [10, -1, "nonsense", True])
    def test_unknown_references(self, ref: object) -> None:
        with pytest.raises(ProcessingError):
            STAGE_REGISTRY.resolve(ref)  # type: ignore[arg-type]


def test_stage_table_rows_follow_plan() -> None:
    rows = STAGE_REGISTRY.stage_table()
    assert len(rows) == len(StageKey)
    assert rows[0][:3] == ("pregate", "0", "preprocess")
    assert rows[-1][2] == "email"
