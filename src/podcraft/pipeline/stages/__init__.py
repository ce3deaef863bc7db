"""Stage handlers.

Importing this package registers a handler for every ``StageKey`` and
fails at import if any stage is left without one.
"""

from podcraft.pipeline.stages import distribute, extract, plan, preprocess, write
from podcraft.pipeline.stages.base import (
    StageDeps,
    StageHandler,
    check_handlers,
    get_handler,
    register_handler,
)
from podcraft.pipeline.stages.write import STRATEGIES, DraftStrategy, strategy_for

check_handlers()

__all__ = [
    "STRATEGIES",
    "DraftStrategy",
    "StageDeps",
    "StageHandler",
    "check_handlers",
    "distribute",
    "extract",
    "get_handler",
    "plan",
    "preprocess",
    "register_handler",
    "strategy_for",
    "write",
]
