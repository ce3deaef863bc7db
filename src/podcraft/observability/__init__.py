"""Observability module for podcraft.

Provides structured logging, run correlation, and usage metering.
"""

from podcraft.observability.logging import (
    close_file_logging,
    configure_logging,
    get_logger,
)
from podcraft.observability.tracing import (
    bind_stage,
    generate_run_id,
    get_pipeline_run_id,
    run_context,
    set_pipeline_run_id,
)
from podcraft.observability.usage import (
    JSONLUsageMeter,
    NullUsageMeter,
    UsageMeter,
    UsageRecord,
)

__all__ = [
    "JSONLUsageMeter",
    "NullUsageMeter",
    "UsageMeter",
    "UsageRecord",
    "bind_stage",
    "close_file_logging",
    "configure_logging",
    "generate_run_id",
    "get_logger",
    "get_pipeline_run_id",
    "run_context",
    "set_pipeline_run_id",
]
