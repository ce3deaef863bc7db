"""Stage registry and fixed phase plan.

Every stage of the pipeline is a member of the closed ``StageKey`` enum and
has exactly one immutable ``StageDescriptor``. Descriptors are registered
once, at import time, into the default registry; the phase plan is then
validated against them so that wiring mistakes (a dependency in the same or
a later phase, a second producer of a canonical artifact, a stage missing
from the plan) fail at import rather than mid-run.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from podcraft.errors import ProcessingError
from podcraft.models.distribute import Platform

if TYPE_CHECKING:
    from collections.abc import Iterator


class Provider(StrEnum):
    """Model provider back-ends."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Phase(StrEnum):
    """Coarse pipeline phase a stage belongs to."""

    PREGATE = "pregate"
    EXTRACT = "extract"
    PLAN = "plan"
    WRITE = "write"
    DISTRIBUTE = "distribute"


class StageKind(StrEnum):
    """How a stage reacts to invalid output.

    GATE and EXTRACTION stages fail hard; GENERATIVE stages retry with
    feedback and fall back to their best attempt.
    """

    GATE = "gate"
    EXTRACTION = "extraction"
    GENERATIVE = "generative"


class CanonicalArtifact(StrEnum):
    """Data with exactly one producing stage per run."""

    EPISODE_SUMMARY = "episode_summary"
    QUOTE_SET = "quote_set"


class StageKey(StrEnum):
    """Closed set of pipeline stages."""

    PREPROCESS = "preprocess"
    SUMMARY = "summary"
    QUOTES = "quotes"
    OUTLINE = "outline"
    PARAGRAPHS = "paragraphs"
    HEADLINES = "headlines"
    DRAFT = "draft"
    REFINE = "refine"
    SOCIAL_INSTAGRAM = "social_instagram"
    SOCIAL_TWITTER = "social_twitter"
    SOCIAL_LINKEDIN = "social_linkedin"
    SOCIAL_FACEBOOK = "social_facebook"
    EMAIL = "email"


class RegistryError(ValueError):
    """Raised when stage descriptors or the phase plan are inconsistent."""


@dataclass(frozen=True)
class StageDescriptor:
    """Static description of one stage.

    Attributes:
        key: Stage identifier.
        number: Numeric stage id (0-9). Platform stages share number 8.
        name: Human-readable name used in messages.
        provider: Default provider back-end.
        model: Default model.
        phase: Coarse pipeline phase.
        kind: Failure semantics for invalid output.
        depends_on: Stages whose results this stage reads.
        produces: Canonical artifacts this stage is the producer of.
        platform: Target platform for social stages.
        temperature: Sampling temperature.
        max_tokens: Output token limit.
    """

    key: StageKey
    number: int
    name: str
    provider: Provider
    model: str
    phase: Phase
    kind: StageKind
    depends_on: tuple[StageKey, ...] = ()
    produces: tuple[CanonicalArtifact, ...] = ()
    platform: Platform | None = None
    temperature: float = 0.7
    max_tokens: int = 4096


@dataclass(frozen=True)
class PhaseGroup:
    """Stages launched together; groups run strictly in order."""

    name: str
    phase: Phase
    stages: tuple[StageKey, ...]


STAGE_NUMBER_RANGE = range(10)
PLATFORM_STAGE_NUMBER = 8

_OPENAI_DEFAULT = "gpt-5-mini"
_ANTHROPIC_DEFAULT = "claude-sonnet-4-20250514"
_ANTHROPIC_FAST = "claude-3-5-haiku-20241022"

_SOCIAL_DEPENDS = (StageKey.SUMMARY, StageKey.QUOTES, StageKey.HEADLINES, StageKey.REFINE)

SOCIAL_STAGES: dict[Platform, StageKey] = {
    Platform.INSTAGRAM: StageKey.SOCIAL_INSTAGRAM,
    Platform.TWITTER: StageKey.SOCIAL_TWITTER,
    Platform.LINKEDIN: StageKey.SOCIAL_LINKEDIN,
    Platform.FACEBOOK: StageKey.SOCIAL_FACEBOOK,
}


def _social(platform: Platform) -> StageDescriptor:
    return StageDescriptor(
        key=SOCIAL_STAGES[platform],
        number=PLATFORM_STAGE_NUMBER,
        name=f"{platform.value.capitalize()} Posts",
        provider=Provider.ANTHROPIC,
        model=_ANTHROPIC_DEFAULT,
        phase=Phase.DISTRIBUTE,
        kind=StageKind.GENERATIVE,
        depends_on=_SOCIAL_DEPENDS,
        platform=platform,
        temperature=0.8,
        max_tokens=2000,
    )


DEFAULT_DESCRIPTORS: tuple[StageDescriptor, ...] = (
    StageDescriptor(
        key=StageKey.PREPROCESS,
        number=0,
        name="Transcript Preprocessing",
        provider=Provider.ANTHROPIC,
        model=_ANTHROPIC_FAST,
        phase=Phase.PREGATE,
        kind=StageKind.GATE,
        temperature=0.3,
        max_tokens=8192,
    ),
    StageDescriptor(
        key=StageKey.SUMMARY,
        number=1,
        name="Episode Summary",
        provider=Provider.OPENAI,
        model=_OPENAI_DEFAULT,
        phase=Phase.EXTRACT,
        kind=StageKind.EXTRACTION,
        depends_on=(StageKey.PREPROCESS,),
        produces=(CanonicalArtifact.EPISODE_SUMMARY,),
        temperature=0.5,
    ),
    StageDescriptor(
        key=StageKey.QUOTES,
        number=2,
        name="Quote Extraction",
        provider=Provider.OPENAI,
        model=_OPENAI_DEFAULT,
        phase=Phase.EXTRACT,
        kind=StageKind.EXTRACTION,
        produces=(CanonicalArtifact.QUOTE_SET,),
        temperature=0.6,
    ),
    StageDescriptor(
        key=StageKey.OUTLINE,
        number=3,
        name="Blog Outline",
        provider=Provider.OPENAI,
        model=_OPENAI_DEFAULT,
        phase=Phase.PLAN,
        kind=StageKind.EXTRACTION,
        depends_on=(StageKey.SUMMARY, StageKey.QUOTES),
    ),
    StageDescriptor(
        key=StageKey.PARAGRAPHS,
        number=4,
        name="Paragraph Details",
        provider=Provider.OPENAI,
        model=_OPENAI_DEFAULT,
        phase=Phase.PLAN,
        kind=StageKind.EXTRACTION,
        depends_on=(StageKey.QUOTES, StageKey.OUTLINE),
    ),
    StageDescriptor(
        key=StageKey.HEADLINES,
        number=5,
        name="Headlines",
        provider=Provider.OPENAI,
        model=_OPENAI_DEFAULT,
        phase=Phase.PLAN,
        kind=StageKind.EXTRACTION,
        depends_on=(StageKey.SUMMARY, StageKey.OUTLINE),
        temperature=0.8,
    ),
    StageDescriptor(
        key=StageKey.DRAFT,
        number=6,
        name="Blog Draft",
        provider=Provider.OPENAI,
        model=_OPENAI_DEFAULT,
        phase=Phase.WRITE,
        kind=StageKind.GENERATIVE,
        depends_on=(
            StageKey.SUMMARY,
            StageKey.QUOTES,
            StageKey.OUTLINE,
            StageKey.PARAGRAPHS,
            StageKey.HEADLINES,
        ),
        max_tokens=8000,
    ),
    StageDescriptor(
        key=StageKey.REFINE,
        number=7,
        name="Refinement",
        provider=Provider.ANTHROPIC,
        model=_ANTHROPIC_DEFAULT,
        phase=Phase.WRITE,
        kind=StageKind.GENERATIVE,
        depends_on=(StageKey.DRAFT,),
        temperature=0.5,
        max_tokens=8000,
    ),
    _social(Platform.INSTAGRAM),
    _social(Platform.TWITTER),
    _social(Platform.LINKEDIN),
    _social(Platform.FACEBOOK),
    StageDescriptor(
        key=StageKey.EMAIL,
        number=9,
        name="Email Campaign",
        provider=Provider.ANTHROPIC,
        model=_ANTHROPIC_DEFAULT,
        phase=Phase.DISTRIBUTE,
        kind=StageKind.GENERATIVE,
        depends_on=(StageKey.SUMMARY, StageKey.HEADLINES, StageKey.REFINE),
        max_tokens=3000,
    ),
)

PHASE_PLAN: tuple[PhaseGroup, ...] = (
    PhaseGroup("pregate", Phase.PREGATE, (StageKey.PREPROCESS,)),
    PhaseGroup("extract", Phase.EXTRACT, (StageKey.SUMMARY, StageKey.QUOTES)),
    PhaseGroup("plan", Phase.PLAN, (StageKey.OUTLINE,)),
    PhaseGroup("plan_details", Phase.PLAN, (StageKey.PARAGRAPHS, StageKey.HEADLINES)),
    PhaseGroup("write", Phase.WRITE, (StageKey.DRAFT,)),
    PhaseGroup("write_refine", Phase.WRITE, (StageKey.REFINE,)),
    PhaseGroup(
        "distribute",
        Phase.DISTRIBUTE,
        (*SOCIAL_STAGES.values(), StageKey.EMAIL),
    ),
)


class StageRegistry:
    """Descriptors of every stage plus canonical-artifact ownership.

    Registration rejects duplicate keys and a second producer for any
    canonical artifact. ``validate()`` checks a phase plan against the
    registered descriptors.
    """

    def __init__(self) -> None:
        self._stages: dict[StageKey, StageDescriptor] = {}
        self._producers: dict[CanonicalArtifact, StageKey] = {}

    # -- Registration ----------------------------------------------------------

    def register(self, descriptor: StageDescriptor) -> None:
        """Register a stage descriptor.

        Raises:
            RegistryError: If the key is already registered or one of the
                artifacts it produces already has a producer.
        """
        if descriptor.key in self._stages:
            raise RegistryError(f"Duplicate stage key {descriptor.key.value!r}")
        for artifact in descriptor.produces:
            if artifact in self._producers:
                raise RegistryError(
                    f"Canonical artifact {artifact.value!r} is already produced by "
                    f"{self._producers[artifact].value!r}; "
                    f"{descriptor.key.value!r} cannot also produce it"
                )
        if descriptor.number not in STAGE_NUMBER_RANGE:
            raise RegistryError(
                f"Stage {descriptor.key.value!r} has number {descriptor.number}, "
                f"outside {STAGE_NUMBER_RANGE.start}-{STAGE_NUMBER_RANGE.stop - 1}"
            )

        self._stages[descriptor.key] = descriptor
        for artifact in descriptor.produces:
            self._producers[artifact] = descriptor.key

    # -- Lookup ----------------------------------------------------------------

    def get(self, key: StageKey) -> StageDescriptor:
        """Get the descriptor of a registered stage.

        Raises:
            KeyError: If the stage is not registered.
        """
        return self._stages[key]

    def producer_of(self, artifact: CanonicalArtifact) -> StageDescriptor:
        """Get the single stage producing a canonical artifact.

        Raises:
            KeyError: If nothing produces it.
        """
        return self._stages[self._producers[artifact]]

    def resolve(
        self,
        stage: StageKey | int | str,
        platform: Platform | str | None = None,
    ) -> StageDescriptor:
        """Resolve a stage reference to its descriptor.

        Accepts a StageKey, its string value, or a numeric stage id. Stage
        number 8 is shared by the platform stages and needs ``platform``.

        Raises:
            ProcessingError: If the reference names no registered stage.
        """
        if isinstance(stage, bool):
            raise ProcessingError(f"Invalid stage reference: {stage!r}")

        if isinstance(stage, int):
            return self._resolve_number(stage, platform)

        try:
            key = StageKey(stage)
        except ValueError:
            raise ProcessingError(f"Unknown stage: {stage!r}") from None
        if key not in self._stages:
            raise ProcessingError(f"Stage {key.value!r} is not registered")
        return self._stages[key]

    def _resolve_number(self, number: int, platform: Platform | str | None) -> StageDescriptor:
        if number not in STAGE_NUMBER_RANGE:
            raise ProcessingError(
                f"Invalid stage number: {number}. Must be "
                f"{STAGE_NUMBER_RANGE.start}-{STAGE_NUMBER_RANGE.stop - 1}"
            )

        matches = [d for d in self._stages.values() if d.number == number]
        if number == PLATFORM_STAGE_NUMBER:
            options = ", ".join(p.value for p in Platform)
            if platform is None:
                raise ProcessingError(f"Stage {number} requires a platform ({options})")
            try:
                target = Platform(platform)
            except ValueError:
                raise ProcessingError(
                    f"Invalid platform {platform!r} for stage {number}; must be one of: {options}"
                ) from None
            matches = [d for d in matches if d.platform is target]

        if not matches:
            raise ProcessingError(f"Stage {number} is not registered")
        return matches[0]

    @property
    def keys(self) -> list[StageKey]:
        return list(self._stages)

    def __iter__(self) -> Iterator[StageDescriptor]:
        return iter(self._stages.values())

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, key: object) -> bool:
        return key in self._stages

    # -- Validation ------------------------------------------------------------

    def validate(self, plan: tuple[PhaseGroup, ...]) -> list[str]:
        """Validate a phase plan against the registered stages.

        Every registered stage must appear in exactly one group, and every
        dependency must sit in a strictly earlier group: a group never has
        an internal dependency edge.

        Returns:
            List of error strings. Empty means valid.
        """
        errors: list[str] = []
        position: dict[StageKey, int] = {}

        for index, group in enumerate(plan):
            if not group.stages:
                errors.append(f"Phase group {group.name!r} has no stages")
            for key in group.stages:
                if key not in self._stages:
                    errors.append(
                        f"Phase group {group.name!r} lists unregistered stage {key.value!r}"
                    )
                elif key in position:
                    errors.append(f"Stage {key.value!r} appears in more than one phase group")
                else:
                    position[key] = index

        for key in self._stages:
            if key not in position:
                errors.append(f"Stage {key.value!r} is not scheduled in any phase group")

        for key, index in position.items():
            for dep in self._stages[key].depends_on:
                if dep not in position:
                    errors.append(
                        f"Stage {key.value!r} depends on {dep.value!r}, which is not scheduled"
                    )
                elif position[dep] >= index:
                    errors.append(
                        f"Stage {key.value!r} depends on {dep.value!r}, "
                        f"which is not in an earlier phase group"
                    )

        return errors

    # -- Display ---------------------------------------------------------------

    def stage_table(self, plan: tuple[PhaseGroup, ...] = PHASE_PLAN) -> list[tuple[str, ...]]:
        """Rows of (group, number, key, name, provider, model, kind) in plan order."""
        rows = []
        for group in plan:
            for key in group.stages:
                d = self._stages[key]
                rows.append(
                    (
                        group.name,
                        str(d.number),
                        d.key.value,
                        d.name,
                        d.provider.value,
                        d.model,
                        d.kind.value,
                    )
                )
        return rows


def build_registry(
    descriptors: tuple[StageDescriptor, ...] = DEFAULT_DESCRIPTORS,
    plan: tuple[PhaseGroup, ...] = PHASE_PLAN,
) -> StageRegistry:
    """Register descriptors and validate the plan against them.

    Raises:
        RegistryError: On duplicate keys, duplicate canonical producers, or an
            invalid phase plan.
    """
    registry = StageRegistry()
    for descriptor in descriptors:
        registry.register(descriptor)
    errors = registry.validate(plan)
    if errors:
        raise RegistryError("Invalid phase plan: " + "; ".join(errors))
    return registry


STAGE_REGISTRY = build_registry()
