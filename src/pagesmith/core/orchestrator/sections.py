"""Split MDX wiki pages into frontmatter, preamble and ``##`` sections.

Only H2 headings start a section; H3 and deeper stay inside their parent.
Headings inside ``` or ~~~ code fences are ignored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from pagesmith.core.orchestrator.collaborators import SourceCacheEntry

_FRONTMATTER_RE = re.compile(r"^(---\n[\s\S]*?\n---\n?)")
_FENCE_RE = re.compile(r"^(`{3,}|~{3,})")
_H2_RE = re.compile(r"^## ")
_HEADING_MARKS_RE = re.compile(r"^#+\s*")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")

_SOURCE_SNIPPET_CHARS = 1_000


@dataclass(frozen=True)
class ParsedSection:
    """A single ``##`` section.

    Attributes:
        id: Slug derived from the heading, e.g. ``key-challenges``
        heading: The heading line itself, e.g. ``## Key Challenges``
        content: Full section text including the heading line
    """

    id: str
    heading: str
    content: str

    @property
    def word_count(self) -> int:
        return len(self.content.split())


@dataclass(frozen=True)
class SplitPage:
    """A page split into its structural parts."""

    frontmatter: str
    preamble: str
    sections: tuple[ParsedSection, ...]

    @property
    def section_ids(self) -> list[str]:
        return [section.id for section in self.sections]

    def find(self, section_id: str) -> Optional[ParsedSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def with_section_content(self, section_id: str, content: str) -> SplitPage:
        """Return a copy with the first section matching *section_id* replaced."""
        updated = list(self.sections)
        for index, section in enumerate(updated):
            if section.id == section_id:
                updated[index] = replace(section, content=content)
                break
        else:
            raise KeyError(section_id)
        return replace(self, sections=tuple(updated))


def heading_to_id(heading: str) -> str:
    """Convert a heading line to a slug.

    ``## Key Challenges (2023–2025)`` becomes ``key-challenges-2023-2025``.
    """
    text = _HEADING_MARKS_RE.sub("", heading).lower()
    return _NON_ALNUM_RE.sub("-", text).strip("-")


def split_into_sections(content: str) -> SplitPage:
    frontmatter = ""
    body = content
    match = _FRONTMATTER_RE.match(content)
    if match:
        frontmatter = match.group(1)
        body = content[len(frontmatter):]

    sections: list[ParsedSection] = []
    preamble_lines: list[str] = []
    current_lines: Optional[list[str]] = None
    current_heading = ""
    in_fence = False

    def flush() -> None:
        if current_lines is not None and current_heading:
            sections.append(
                ParsedSection(
                    id=heading_to_id(current_heading),
                    heading=current_heading,
                    content="\n".join([current_heading, *current_lines]),
                )
            )

    for line in body.split("\n"):
        if _FENCE_RE.match(line):
            in_fence = not in_fence

        if not in_fence and _H2_RE.match(line):
            flush()
            current_heading = line
            current_lines = []
        elif current_lines is not None:
            current_lines.append(line)
        else:
            preamble_lines.append(line)

    flush()

    return SplitPage(
        frontmatter=frontmatter,
        preamble="\n".join(preamble_lines),
        sections=tuple(sections),
    )


def reassemble_sections(split: SplitPage) -> str:
    """Join the parts with blank lines, ending in exactly one newline."""
    parts: list[str] = []
    if split.frontmatter:
        parts.append(split.frontmatter.rstrip())
    if split.preamble.strip():
        parts.append(split.preamble.rstrip())
    for section in split.sections:
        parts.append(section.content.rstrip())

    result = "\n\n".join(parts) + "\n"
    return _EXCESS_NEWLINES_RE.sub("\n\n", result)


def filter_sources_for_section(
    section: ParsedSection,
    sources: Sequence[SourceCacheEntry],
) -> list[SourceCacheEntry]:
    """Rank cached sources by keyword overlap with the section heading.

    Heading words longer than three characters score +2 per hit in the source
    title, +2 in its facts and +1 in the first 1000 characters of its content.
    Sources keep their original order when nothing scores.
    """
    if not sources:
        return []

    heading_words = [
        word for word in _HEADING_MARKS_RE.sub("", section.heading).lower().split() if len(word) > 3
    ]
    if not heading_words:
        return list(sources)

    scored: list[tuple[int, SourceCacheEntry]] = []
    for source in sources:
        title = source.title.lower()
        facts = " ".join(source.facts).lower()
        snippet = (source.content or "").lower()[:_SOURCE_SNIPPET_CHARS]
        score = 0
        for word in heading_words:
            if word in title:
                score += 2
            if word in facts:
                score += 2
            if word in snippet:
                score += 1
        scored.append((score, source))

    if not any(score > 0 for score, _ in scored):
        return list(sources)

    # sorted() is stable, so ties keep cache order
    return [source for _, source in sorted(scored, key=lambda item: item[0], reverse=True)]


__all__ = [
    "ParsedSection",
    "SplitPage",
    "heading_to_id",
    "split_into_sections",
    "reassemble_sections",
    "filter_sources_for_section",
]
