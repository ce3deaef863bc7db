"""Pipeline orchestration: registry, scheduling, stage execution."""

from podcraft.pipeline.config import (
    EvergreenSettings,
    PipelineConfig,
    PipelineConfigError,
    RetryConfig,
    create_default_config,
    load_pipeline_config,
)
from podcraft.pipeline.context import ProcessingContext, StageOutputs
from podcraft.pipeline.orchestrator import PipelineOrchestrator, PipelineRun, describe_failure
from podcraft.pipeline.registry import (
    PHASE_PLAN,
    STAGE_REGISTRY,
    CanonicalArtifact,
    Phase,
    PhaseGroup,
    Provider,
    RegistryError,
    StageDescriptor,
    StageKey,
    StageKind,
    StageRegistry,
    build_registry,
)
from podcraft.pipeline.results import PhaseReport, PhaseStatus, StageResult
from podcraft.pipeline.runner import StageRunner
from podcraft.pipeline.scheduler import REQUIRED_INPUTS, PhaseScheduler, missing_inputs

__all__ = [
    "PHASE_PLAN",
    "REQUIRED_INPUTS",
    "STAGE_REGISTRY",
    "CanonicalArtifact",
    "EvergreenSettings",
    "Phase",
    "PhaseGroup",
    "PhaseReport",
    "PhaseScheduler",
    "PhaseStatus",
    "PipelineConfig",
    "PipelineConfigError",
    "PipelineOrchestrator",
    "PipelineRun",
    "ProcessingContext",
    "Provider",
    "RegistryError",
    "RetryConfig",
    "StageDescriptor",
    "StageKey",
    "StageKind",
    "StageOutputs",
    "StageRegistry",
    "StageResult",
    "StageRunner",
    "build_registry",
    "create_default_config",
    "describe_failure",
    "load_pipeline_config",
    "missing_inputs",
]
