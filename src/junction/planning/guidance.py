"""Keyword lookup into a project's migration notes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

DEFAULT_KEYWORDS: tuple[str, ...] = (
    "RouteComponentProps",
    "withRouter",
    "useHistory",
    "useNavigate",
    "useLocation",
    "Switch",
    "Redirect",
    "Navigate",
)

_EXCERPT_RADIUS = 600
_MAX_BULLETS = 6
_MIN_BULLET_LENGTH = 20
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")


@dataclass(slots=True)
class GuidanceCitation:
    """Source passage backing the guidance bullets."""

    title: str
    quote: str
    url: str | None = None


@dataclass(slots=True)
class Guidance:
    """Short excerpt of migration notes relevant to a diagnostic."""

    bullets: list[str] = field(default_factory=list)
    citations: list[GuidanceCitation] = field(default_factory=list)


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern[str] | None:
    cleaned = [re.escape(word) for word in keywords if word]
    if not cleaned:
        return None
    return re.compile("|".join(cleaned))


def search_guidance(
    document: Path | str,
    hint: str,
    keywords: Iterable[str] = DEFAULT_KEYWORDS,
) -> Guidance | None:
    """Pull bullets from ``document`` around the first keyword found.

    The hint is searched first so the excerpt follows the diagnostic; when
    the hint mentions no keyword the document's own first keyword is used.
    """
    path = Path(document)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    pattern = _keyword_pattern(tuple(keywords))
    if pattern is None:
        return None
    match = pattern.search(hint or "") or pattern.search(text)
    if match is None:
        return None
    # A keyword seen only in the hint falls back to the head of the document.
    index = text.find(match.group(0))
    excerpt = text[max(0, index - _EXCERPT_RADIUS) : index + _EXCERPT_RADIUS]
    bullets: list[str] = []
    for sentence in _SENTENCE_SPLIT_RE.split(excerpt)[:_MAX_BULLETS]:
        stripped = sentence.strip()
        if len(stripped) > _MIN_BULLET_LENGTH:
            bullets.append(stripped)
    return Guidance(bullets=bullets, citations=[GuidanceCitation(title=path.name, quote=excerpt.strip())])


__all__ = ["DEFAULT_KEYWORDS", "Guidance", "GuidanceCitation", "search_guidance"]
