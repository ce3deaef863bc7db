"""Domain error types shared across the pipeline.

Three kinds of failure cross stage boundaries:

- ``ValidationError``: a stage's output violates its structure.
- ``ProviderError`` (in ``podcraft.providers.base``): the model provider failed.
- ``ProcessingError``: orchestration-level wrapper naming the stage and run.

The stage runner wraps anything that is not a domain error in
``ProcessingError`` exactly once and lets domain errors through unchanged;
the phase scheduler then gives a bare ``ValidationError`` or ``ProviderError``
its stage and run context.
"""

from __future__ import annotations


class PodcraftError(Exception):
    """Base class for all podcraft domain errors."""


class ValidationError(PodcraftError):
    """Raised when a stage output fails structural validation.

    Attributes:
        field: Dotted path of the offending field (e.g. ``key_quotes[2].speaker``).
        reason: What is wrong with it.
    """

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Validation failed for '{field}': {reason}")


class ProcessingError(PodcraftError):
    """Raised when a stage cannot be executed or its execution failed.

    Attributes:
        stage_number: Numeric stage id (0-9), or None when the id was unknown.
        stage_name: Human-readable stage name.
        run_id: Pipeline run the failure belongs to.
        detail: Failure description without the stage prefix.
    """

    def __init__(
        self,
        message: str,
        *,
        stage_number: int | None = None,
        stage_name: str | None = None,
        run_id: str | None = None,
    ) -> None:
        self.stage_number = stage_number
        self.stage_name = stage_name
        self.run_id = run_id
        self.detail = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.stage_name is None:
            return self.detail
        if self.stage_number is None:
            return f"Stage {self.stage_name} failed: {self.detail}"
        return f"Stage {self.stage_number} ({self.stage_name}) failed: {self.detail}"
