"""Structural metrics of MDX wiki pages.

All counts are computed on the page body: frontmatter and ``import`` lines
are removed first. The structural score is the article score (0-15) scaled
to 0-100, the scale the quality-gate minimums are expressed on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pagesmith.core.orchestrator.models import QualityMetrics

_FRONTMATTER_RE = re.compile(r"^---\n[\s\S]*?\n---\n?")
_IMPORT_RE = re.compile(r"^import\s+.*$", re.MULTILINE)

# Word counting strips everything that is not prose, in this order.
_WORD_STRIP_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"`[^`]+`"), ""),
    (re.compile(r"<Mermaid[^`]*`[\s\S]*?`\s*}\s*/>"), ""),
    (re.compile(r"<[A-Z][a-zA-Z]*\s+[^/]*/>"), ""),
    (re.compile(r"<[A-Z][a-zA-Z]*\s*/>"), ""),
    (re.compile(r"<[A-Z][a-zA-Z]*[^>]*>[\s\S]*?</[A-Z][a-zA-Z]*>"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"https?://\S+"), ""),
    (re.compile(r"<[^>]+>"), ""),
)

_INTERNAL_LINK_RE = re.compile(r"\]\(/[^)]+\)")
_ENTITY_LINK_RE = re.compile(r"<EntityLink[^>]*>")
_RESOURCE_LINK_RE = re.compile(r"<R\s+id=")
_EXTERNAL_LINK_RE = re.compile(r"\]\(https?://[^)]+\)")
_FOOTNOTE_REF_RE = re.compile(r"\[\^(\d+)\]")
_FOOTNOTE_DEF_LINE_RE = re.compile(r"^\[\^\d+\]:")
_H2_RE = re.compile(r"^##\s+", re.MULTILINE)
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_BULLET_RE = re.compile(r"^\s*[-*]\s+|^\s*\d+\.\s+")
_OVERVIEW_RE = re.compile(r"^##\s+overview", re.IGNORECASE | re.MULTILINE)

_MARKDOWN_TABLE_RE = re.compile(r"^\|[\s\-:|]+\|$", re.MULTILINE)
_TABLE_COMPONENT_RE = re.compile(r"<(?:table|ComparisonTable|TableView)[\s>]")
_MERMAID_FENCE_RE = re.compile(r"```mermaid")
_DIAGRAM_COMPONENT_RE = re.compile(r"<(?:Mermaid|MermaidDiagram|SquiggleEstimate|CauseEffectGraph)[\s>]")

MAX_ARTICLE_SCORE = 15
NORMALIZED_SCORE_SCALE = 100


@dataclass(frozen=True)
class PageMetrics:
    """Raw metrics used for scoring; ``QualityMetrics`` is the public subset."""

    word_count: int
    table_count: int
    diagram_count: int
    internal_links: int
    external_links: int
    footnote_count: int
    h2_count: int
    bullet_ratio: float
    has_overview: bool

    @property
    def article_score(self) -> int:
        score = 0
        if self.word_count >= 800:
            score += 2
        elif self.word_count >= 300:
            score += 1

        if self.table_count >= 3:
            score += 3
        elif self.table_count >= 2:
            score += 2
        elif self.table_count >= 1:
            score += 1

        if self.diagram_count >= 2:
            score += 2
        elif self.diagram_count >= 1:
            score += 1

        if self.internal_links >= 4:
            score += 2
        elif self.internal_links >= 1:
            score += 1

        citations = self.footnote_count + self.external_links
        if citations >= 6:
            score += 3
        elif citations >= 3:
            score += 2
        elif citations >= 1:
            score += 1

        if self.bullet_ratio < 0.3:
            score += 2
        elif self.bullet_ratio < 0.5:
            score += 1

        if self.has_overview:
            score += 1
        return score

    @property
    def structural_score(self) -> int:
        return round(self.article_score / MAX_ARTICLE_SCORE * NORMALIZED_SCORE_SCALE)


def strip_frontmatter(content: str) -> str:
    return _FRONTMATTER_RE.sub("", content, count=1)


def count_words(text: str) -> int:
    for pattern, replacement in _WORD_STRIP_PATTERNS:
        text = pattern.sub(replacement, text)
    return len(text.split())


def count_internal_links(text: str) -> int:
    """Internal Markdown links plus ``<EntityLink>`` and ``<R id=...>`` tags."""
    return (
        len(_INTERNAL_LINK_RE.findall(text))
        + len(_ENTITY_LINK_RE.findall(text))
        + len(_RESOURCE_LINK_RE.findall(text))
    )


def count_footnote_refs(text: str) -> int:
    """Count unique numeric footnote references, ignoring definition lines."""
    refs: set[str] = set()
    for line in text.split("\n"):
        if _FOOTNOTE_DEF_LINE_RE.match(line.strip()):
            continue
        refs.update(_FOOTNOTE_REF_RE.findall(line))
    return len(refs)


def count_tables(text: str) -> int:
    return len(_MARKDOWN_TABLE_RE.findall(text)) + len(_TABLE_COMPONENT_RE.findall(text))


def count_diagrams(text: str) -> int:
    return len(_MERMAID_FENCE_RE.findall(text)) + len(_DIAGRAM_COMPONENT_RE.findall(text))


def bullet_ratio(text: str) -> float:
    lines = [line for line in _CODE_BLOCK_RE.sub("", text).split("\n") if line.strip()]
    if not lines:
        return 0.0
    bullets = sum(1 for line in lines if _BULLET_RE.match(line))
    return bullets / len(lines)


def extract_page_metrics(content: str) -> PageMetrics:
    body = _IMPORT_RE.sub("", strip_frontmatter(content))
    return PageMetrics(
        word_count=count_words(body),
        table_count=count_tables(body),
        diagram_count=count_diagrams(body),
        internal_links=count_internal_links(body),
        external_links=len(_EXTERNAL_LINK_RE.findall(body)),
        footnote_count=count_footnote_refs(body),
        h2_count=len(_H2_RE.findall(body)),
        bullet_ratio=bullet_ratio(body),
        has_overview=bool(_OVERVIEW_RE.search(body)),
    )


def extract_quality_metrics(content: str) -> QualityMetrics:
    """Compute the quality-gate metrics of a page."""
    metrics = extract_page_metrics(content)
    return QualityMetrics(
        word_count=metrics.word_count,
        footnote_count=metrics.footnote_count,
        entity_link_count=metrics.internal_links,
        diagram_count=metrics.diagram_count,
        table_count=metrics.table_count,
        section_count=metrics.h2_count,
        structural_score=metrics.structural_score,
    )


__all__ = [
    "PageMetrics",
    "strip_frontmatter",
    "count_words",
    "count_internal_links",
    "count_footnote_refs",
    "count_tables",
    "count_diagrams",
    "bullet_ratio",
    "extract_page_metrics",
    "extract_quality_metrics",
]
