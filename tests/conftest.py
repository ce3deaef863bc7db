"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from podcraft.pipeline.config import PipelineConfig
from podcraft.pipeline.registry import Provider, StageKey
from podcraft.pipeline.stages import StageDeps
from tests.fixtures.fake_invoker import FakeInvoker


@pytest.fixture(autouse=True)
def clean_podcraft_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep model and draft-mode overrides from the shell out of tests."""
    monkeypatch.delenv("PODCRAFT_DRAFT_MODE", raising=False)
    monkeypatch.delenv("PODCRAFT_CONFIG", raising=False)
    for key in StageKey:
        monkeypatch.delenv(f"PODCRAFT_MODEL_{key.value.upper()}", raising=False)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def deps(fake_invoker: FakeInvoker, pipeline_config: PipelineConfig) -> StageDeps:
    """Stage collaborators backed by one scripted invoker for every provider."""
    return StageDeps(
        invokers={provider: fake_invoker for provider in Provider},
        config=pipeline_config,
    )
