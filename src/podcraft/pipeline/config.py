"""Pipeline configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from ruamel.yaml import YAML

from podcraft.errors import ProcessingError
from podcraft.models.distribute import Platform
from podcraft.pipeline.registry import Provider, StageDescriptor, StageKey
from podcraft.providers.retry import RetryPolicy

DEFAULT_CONFIG_FILENAME = "podcraft.yaml"
DEFAULT_PREPROCESS_THRESHOLD = 8000
DEFAULT_GENERATIVE_RETRIES = 1

DraftMode = Literal["single", "dual"]
_DRAFT_MODES: tuple[DraftMode, ...] = ("single", "dual")


def _override_provider(override: str, *, source: str) -> Provider | None:
    """Provider named by a ``provider/model`` override, or None for a bare model.

    Raises:
        ValueError: If the provider is not one podcraft can call.
    """
    if "/" not in override:
        return None
    provider_name = override.split("/", 1)[0].lower()
    try:
        return Provider(provider_name)
    except ValueError:
        known = ", ".join(p.value for p in Provider)
        raise ValueError(
            f"{source}: unknown provider {provider_name!r} in {override!r} (expected {known})"
        ) from None


@dataclass(frozen=True)
class EvergreenSettings:
    """Show-level facts that stay the same across episodes."""

    podcast_name: str = ""
    host_name: str = ""
    host_credentials: str = ""
    target_audience: str = ""
    voice_guidelines: str = ""
    website_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvergreenSettings:
        return cls(
            podcast_name=str(data.get("podcast_name", "")),
            host_name=str(data.get("host_name", "")),
            host_credentials=str(data.get("host_credentials", "")),
            target_audience=str(data.get("target_audience", "")),
            voice_guidelines=str(data.get("voice_guidelines", "")),
            website_url=str(data.get("website_url", "")),
        )

    def as_variables(self) -> dict[str, str]:
        """Template variables describing the show."""
        return {
            "podcast_name": self.podcast_name or "the podcast",
            "host_name": self.host_name or "the host",
            "host_credentials": self.host_credentials,
            "target_audience": self.target_audience or "general listeners",
            "voice_guidelines": self.voice_guidelines or "Warm, clear and direct.",
            "website_url": self.website_url,
        }


@dataclass(frozen=True)
class RetryConfig:
    """Retry budgets.

    Attributes:
        generative: Re-invocations of a generative stage whose output fails
            validation.
        provider_attempts: Total attempts per provider call for transient errors.
        base_delay_seconds: First backoff delay.
        max_delay_seconds: Cap on any single backoff delay.
    """

    generative: int = DEFAULT_GENERATIVE_RETRIES
    provider_attempts: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 60.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        return cls(
            generative=int(data.get("generative", DEFAULT_GENERATIVE_RETRIES)),
            provider_attempts=int(data.get("provider_attempts", 3)),
            base_delay_seconds=float(data.get("base_delay_seconds", 2.0)),
            max_delay_seconds=float(data.get("max_delay_seconds", 60.0)),
        )

    def provider_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.provider_attempts,
            initial_delay=self.base_delay_seconds,
            max_delay=self.max_delay_seconds,
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for a pipeline run.

    Model resolution order for each stage:
    1. Environment variable ``PODCRAFT_MODEL_<STAGE>`` (e.g. PODCRAFT_MODEL_DRAFT)
    2. ``models.<stage>`` in the config file
    3. The stage's built-in default

    Override values are either a bare model name (keeping the stage's
    provider) or ``provider/model``.
    """

    evergreen: EvergreenSettings = field(default_factory=EvergreenSettings)
    preprocess_threshold_tokens: int = DEFAULT_PREPROCESS_THRESHOLD
    retries: RetryConfig = field(default_factory=RetryConfig)
    request_timeout_seconds: float = 300.0
    draft_mode: DraftMode = "single"
    platforms: tuple[Platform, ...] = tuple(Platform)
    models: dict[str, str] = field(default_factory=dict)
    usage_log: Path | None = None

    def __post_init__(self) -> None:
        if self.draft_mode not in _DRAFT_MODES:
            raise ValueError(
                f"draft_mode must be one of {', '.join(_DRAFT_MODES)}, got {self.draft_mode!r}"
            )
        for stage, override in self.models.items():
            _override_provider(override, source=f"models.{stage}")

    @property
    def effective_draft_mode(self) -> DraftMode:
        """Draft mode after applying ``PODCRAFT_DRAFT_MODE``."""
        env_mode = os.getenv("PODCRAFT_DRAFT_MODE")
        if env_mode in _DRAFT_MODES:
            return env_mode  # type: ignore[return-value]
        return self.draft_mode

    def resolve_model(self, descriptor: StageDescriptor) -> tuple[Provider, str]:
        """Get the effective (provider, model) for a stage."""
        env_name = f"PODCRAFT_MODEL_{descriptor.key.value.upper()}"
        override = os.getenv(env_name)
        source = env_name
        if not override:
            override = self.models.get(descriptor.key.value)
            source = f"models.{descriptor.key.value}"
        if not override:
            return descriptor.provider, descriptor.model
        try:
            provider = _override_provider(override, source=source)
        except ValueError as e:
            raise ProcessingError(
                str(e), stage_number=descriptor.number, stage_name=descriptor.name
            ) from None
        if provider is None:
            return descriptor.provider, override
        return provider, override.split("/", 1)[1]

    def is_enabled(self, key: StageKey) -> bool:
        """Check whether a stage is part of this run (platform stages can be disabled)."""
        from podcraft.pipeline.registry import STAGE_REGISTRY

        platform = STAGE_REGISTRY.get(key).platform
        return platform is None or platform in self.platforms

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineConfig:
        """Create config from dictionary.

        Args:
            data: Dictionary containing config fields.

        Returns:
            PipelineConfig instance.
        """
        preprocessing = data.get("preprocessing", {}) or {}
        platforms = data.get("platforms")
        models = data.get("models", {}) or {}
        unknown = sorted(set(models) - {k.value for k in StageKey})
        if unknown:
            raise ValueError(f"Unknown stage(s) in models: {', '.join(unknown)}")
        usage_log = data.get("usage_log")

        return cls(
            evergreen=EvergreenSettings.from_dict(data.get("evergreen", {}) or {}),
            preprocess_threshold_tokens=int(
                preprocessing.get("threshold_tokens", DEFAULT_PREPROCESS_THRESHOLD)
            ),
            retries=RetryConfig.from_dict(data.get("retries", {}) or {}),
            request_timeout_seconds=float(data.get("request_timeout_seconds", 300.0)),
            draft_mode=data.get("draft_mode", "single"),
            platforms=tuple(Platform(p) for p in platforms) if platforms else tuple(Platform),
            models={str(k): str(v) for k, v in models.items()},
            usage_log=Path(usage_log) if usage_log else None,
        )


class PipelineConfigError(Exception):
    """Raised when pipeline configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load pipeline config at {path}: {reason}")


def load_pipeline_config(config_path: Path) -> PipelineConfig:
    """Load pipeline configuration from a YAML file.

    Args:
        config_path: Path to the config file.

    Returns:
        PipelineConfig instance.

    Raises:
        PipelineConfigError: If config cannot be loaded.
    """
    if not config_path.exists():
        raise PipelineConfigError(config_path, "File not found")

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise PipelineConfigError(config_path, "Empty file")
        if not isinstance(data, dict):
            raise PipelineConfigError(config_path, "Top level must be a mapping")

        return PipelineConfig.from_dict(data)
    except Exception as e:
        if isinstance(e, PipelineConfigError):
            raise
        raise PipelineConfigError(config_path, str(e)) from e


def create_default_config(podcast_name: str = "", host_name: str = "") -> dict[str, Any]:
    """Create the contents of a starter config file.

    Returns:
        Dictionary ready to be dumped as YAML.
    """
    return {
        "evergreen": {
            "podcast_name": podcast_name,
            "host_name": host_name,
            "host_credentials": "",
            "target_audience": "",
            "voice_guidelines": "",
            "website_url": "",
        },
        "preprocessing": {"threshold_tokens": DEFAULT_PREPROCESS_THRESHOLD},
        "retries": {
            "generative": DEFAULT_GENERATIVE_RETRIES,
            "provider_attempts": 3,
            "base_delay_seconds": 2.0,
            "max_delay_seconds": 60.0,
        },
        "request_timeout_seconds": 300,
        "draft_mode": "single",
        "platforms": [p.value for p in Platform],
        "models": {},
    }
