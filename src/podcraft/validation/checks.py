"""Structural checks for stage outputs.

Every check returns a list of ``Issue`` values (empty when the check
passes) so checks compose by concatenation; ``verdict()`` folds them into
a ``Verdict``. Stage modules combine these into per-stage validators.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from podcraft.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sized

    import pydantic


@dataclass(frozen=True)
class Issue:
    """One violated constraint."""

    field: str
    reason: str

    def __str__(self) -> str:
        return f"{self.field}: {self.reason}"


@dataclass(frozen=True)
class Verdict:
    """Outcome of validating one stage output."""

    valid: bool
    issues: tuple[Issue, ...] = ()

    @property
    def messages(self) -> list[str]:
        """Issues rendered as ``field: reason`` strings."""
        return [str(issue) for issue in self.issues]

    @classmethod
    def ok(cls) -> Verdict:
        return cls(valid=True)

    @classmethod
    def from_pydantic(cls, error: pydantic.ValidationError) -> Verdict:
        """Build a failing verdict from a pydantic ValidationError."""
        issues = []
        for detail in error.errors():
            loc = detail.get("loc", ())
            path = ".".join(str(part) for part in loc) if loc else "output"
            issues.append(Issue(path, detail.get("msg", "invalid value")))
        return cls(valid=False, issues=tuple(issues))


def verdict(*groups: Iterable[Issue]) -> Verdict:
    """Fold issue lists into a verdict."""
    issues = tuple(issue for group in groups for issue in group)
    return Verdict(valid=not issues, issues=issues)


def require_valid(result: Verdict) -> None:
    """Raise on the first issue of a failing verdict.

    Extraction stages use this: their output feeds every later stage, so a
    structural violation is fatal rather than retried.

    Raises:
        ValidationError: If the verdict is not valid.
    """
    if not result.valid:
        first = result.issues[0]
        reason = first.reason
        if len(result.issues) > 1:
            reason += f" (and {len(result.issues) - 1} more issue(s))"
        raise ValidationError(first.field, reason)


# --- Primitive checks ---


def required(field: str, value: Any) -> list[Issue]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return [Issue(field, "is required")]
    return []


def min_length(field: str, value: str | None, minimum: int) -> list[Issue]:
    length = len(value or "")
    if length < minimum:
        return [Issue(field, f"too short ({length} chars, need at least {minimum})")]
    return []


def max_length(field: str, value: str | None, maximum: int) -> list[Issue]:
    length = len(value or "")
    if length > maximum:
        return [Issue(field, f"too long ({length} chars, maximum {maximum})")]
    return []


def count_words(text: str | None) -> int:
    return len((text or "").split())


def min_words(field: str, text: str | None, minimum: int) -> list[Issue]:
    words = count_words(text)
    if words < minimum:
        return [Issue(field, f"too short ({words} words, need at least {minimum})")]
    return []


def item_count(
    field: str,
    items: Sized | None,
    minimum: int,
    maximum: int | None = None,
) -> list[Issue]:
    count = len(items) if items is not None else 0
    if count < minimum:
        return [Issue(field, f"need at least {minimum} items, got {count}")]
    if maximum is not None and count > maximum:
        return [Issue(field, f"at most {maximum} items allowed, got {count}")]
    return []


def one_of(field: str, value: Any, allowed: Iterable[Any]) -> list[Issue]:
    allowed = tuple(allowed)
    if value not in allowed:
        options = ", ".join(str(a) for a in allowed)
        return [Issue(field, f"invalid value {value!r}; must be one of: {options}")]
    return []


# --- Markdown structure ---

_H1 = re.compile(r"^# [^#]")
_H2 = re.compile(r"^## [^#]")


@dataclass(frozen=True)
class MarkdownStructure:
    """Heading and quote counts of a markdown document."""

    h1_count: int
    h2_count: int
    blockquote_count: int
    paragraph_count: int
    word_count: int

    @property
    def has_title(self) -> bool:
        return self.h1_count >= 1


def analyze_structure(content: str) -> MarkdownStructure:
    """Count headings, blockquotes, paragraphs and words in markdown."""
    lines = content.splitlines()
    paragraph_count = 0
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith(("#", ">", "---", "```")):
            paragraph_count += 1
    return MarkdownStructure(
        h1_count=sum(1 for line in lines if _H1.match(line)),
        h2_count=sum(1 for line in lines if _H2.match(line)),
        blockquote_count=sum(1 for line in lines if line.strip().startswith(">")),
        paragraph_count=paragraph_count,
        word_count=count_words(content),
    )


def extract_title(content: str) -> str | None:
    """Return the text of the first H1 heading, if any."""
    for line in content.splitlines():
        if _H1.match(line):
            return line[2:].strip()
    return None


def markdown_article(
    field: str,
    content: str | None,
    *,
    min_words_count: int,
    min_chars: int = 0,
    min_sections: int = 2,
) -> list[Issue]:
    """Check that text is an article: title, sections and enough length."""
    text = content or ""
    structure = analyze_structure(text)
    issues = min_words(field, text, min_words_count)
    if min_chars:
        issues += min_length(field, text, min_chars)
    if not structure.has_title:
        issues.append(Issue(field, "missing title (a '# ' heading)"))
    if structure.h2_count < min_sections:
        issues.append(
            Issue(
                field,
                f"need at least {min_sections} section headings ('## '), got {structure.h2_count}",
            )
        )
    return issues


# --- Style ---

AI_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(regex, re.IGNORECASE), name)
    for regex, name in (
        (r"in today's (world|fast-paced|busy)", "In today's world..."),
        (r"have you ever (wondered|felt|thought)", "Have you ever..."),
        (r"let's (dive|explore|take a closer look)", "Let's dive/explore..."),
        (r"it's important to (note|remember|understand)", "It's important to note..."),
        (r"first and foremost", "First and foremost"),
        (r"at the end of the day", "At the end of the day"),
        (r"delve (into|deeper)", "Delve into"),
        (r"navigate the landscape", "Navigate the landscape"),
        (r"game-?changer", "Game-changer"),
        (r"self-care isn't selfish", "Self-care isn't selfish"),
        (r"you can't pour from an empty cup", "Empty cup cliche"),
        (r"healing isn't linear", "Healing isn't linear"),
    )
)


def detect_ai_patterns(content: str) -> list[str]:
    """Name the stock phrases found in ``content``.

    Informational only; drafts are never rejected for these.
    """
    return [name for pattern, name in AI_PATTERNS if pattern.search(content)]
