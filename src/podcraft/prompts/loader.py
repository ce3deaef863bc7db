"""Prompt template loading and rendering."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

DEFAULT_TEMPLATES_PATH = Path(__file__).parent / "templates"

# Pattern for {{ variable }} substitution, dotted paths allowed
_VAR_PATTERN = re.compile(r"\{\{\s*(\w+(?:\.\w+)*)\s*\}\}")


@dataclass
class PromptTemplate:
    """A loaded prompt template."""

    name: str
    description: str
    system: str
    user: str
    temperature: float | None = None
    max_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: str) -> PromptTemplate:
        """Create a template from dictionary data.

        Args:
            data: Dictionary containing template fields.
            name: Template name (usually from filename).

        Returns:
            PromptTemplate instance.
        """
        return cls(
            name=data.get("name", name),
            description=data.get("description", ""),
            system=data.get("system", ""),
            user=data.get("user", ""),
            temperature=data.get("temperature"),
            max_tokens=data.get("max_tokens"),
        )


@dataclass(frozen=True)
class RenderedPrompt:
    """A template with every variable substituted."""

    template_name: str
    system: str
    user: str
    temperature: float | None = None
    max_tokens: int | None = None
    unresolved: tuple[str, ...] = ()


class TemplateNotFoundError(Exception):
    """Raised when a template file cannot be found."""

    def __init__(self, template_name: str, path: Path) -> None:
        self.template_name = template_name
        self.path = path
        super().__init__(f"Template not found: {template_name} at {path}")


class TemplateParseError(Exception):
    """Raised when a template file cannot be parsed."""

    def __init__(self, template_name: str, reason: str) -> None:
        self.template_name = template_name
        self.reason = reason
        super().__init__(f"Failed to parse template '{template_name}': {reason}")


@dataclass
class TemplateCache:
    """Parsed templates keyed by name.

    Owned by whoever builds the loader; share one instance between loaders
    to share parsed templates, or pass a fresh one to isolate them.
    """

    _entries: dict[str, PromptTemplate] = field(default_factory=dict)

    def get(self, name: str) -> PromptTemplate | None:
        return self._entries.get(name)

    def put(self, template: PromptTemplate, name: str | None = None) -> None:
        self._entries[name or template.name] = template

    def invalidate(self, name: str) -> bool:
        """Drop one template. Returns True if it was cached."""
        return self._entries.pop(name, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class PromptLoader:
    """Load prompt templates from disk and render them.

    Templates are YAML files with ``system`` and ``user`` keys and optional
    ``temperature``/``max_tokens`` defaults.

    Attributes:
        templates_path: Directory holding ``<name>.yaml`` templates.
        cache: Cache of parsed templates.
    """

    def __init__(
        self,
        templates_path: Path = DEFAULT_TEMPLATES_PATH,
        cache: TemplateCache | None = None,
    ) -> None:
        self.templates_path = templates_path
        self.cache = cache if cache is not None else TemplateCache()
        self._yaml = YAML(typ="safe")

    def _get_template_path(self, template_name: str) -> Path:
        return self.templates_path / f"{template_name}.yaml"

    def load(self, template_name: str) -> PromptTemplate:
        """Load a template by name.

        Args:
            template_name: Name of the template (without .yaml extension).

        Returns:
            Loaded PromptTemplate.

        Raises:
            TemplateNotFoundError: If the template file doesn't exist.
            TemplateParseError: If the template cannot be parsed.
        """
        cached = self.cache.get(template_name)
        if cached is not None:
            return cached

        path = self._get_template_path(template_name)

        if not path.exists():
            raise TemplateNotFoundError(template_name, path)

        try:
            with path.open("r", encoding="utf-8") as f:
                data = self._yaml.load(f)
        except Exception as e:
            raise TemplateParseError(template_name, str(e)) from e

        if not isinstance(data, dict):
            raise TemplateParseError(template_name, "Empty file or not a mapping")
        if not data.get("user"):
            raise TemplateParseError(template_name, "Missing 'user' prompt")

        template = PromptTemplate.from_dict(data, template_name)
        self.cache.put(template, template_name)
        return template

    def render(self, template_name: str, variables: dict[str, Any]) -> RenderedPrompt:
        """Load a template and substitute ``{{ variable }}`` placeholders.

        Unknown placeholders are left in place and reported in
        ``RenderedPrompt.unresolved``.

        Args:
            template_name: Name of the template.
            variables: Values for substitution. Lists and dicts are rendered
                as indented JSON.

        Returns:
            RenderedPrompt ready for the model invoker.
        """
        template = self.load(template_name)
        unresolved: list[str] = []

        def replace_match(match: re.Match[str]) -> str:
            path = match.group(1)
            try:
                return _resolve_variable(path, variables)
            except KeyError:
                unresolved.append(path)
                return match.group(0)

        system = _VAR_PATTERN.sub(replace_match, template.system)
        user = _VAR_PATTERN.sub(replace_match, template.user)
        return RenderedPrompt(
            template_name=template_name,
            system=system,
            user=user,
            temperature=template.temperature,
            max_tokens=template.max_tokens,
            unresolved=tuple(dict.fromkeys(unresolved)),
        )

    def exists(self, template_name: str) -> bool:
        """Check if a template exists."""
        return self._get_template_path(template_name).exists()

    def list_templates(self) -> list[str]:
        """List available template names (without .yaml extension)."""
        if not self.templates_path.exists():
            return []

        return sorted(p.stem for p in self.templates_path.glob("*.yaml") if p.is_file())


def _resolve_variable(path: str, variables: dict[str, Any]) -> str:
    """Resolve a dotted variable path and stringify it.

    Raises:
        KeyError: If the path cannot be resolved.
    """
    value: Any = variables
    for part in path.split("."):
        if isinstance(value, dict):
            if part not in value:
                raise KeyError(path)
            value = value[part]
        elif hasattr(value, part):
            value = getattr(value, part)
        else:
            raise KeyError(path)

    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value, indent=2, ensure_ascii=False)
    return str(value)
