"""Interfaces of the external services the tool handlers delegate to.

Retrieval, section writing, citation auditing, enrichment and rule-based
validation live outside this package. Handlers only see these protocols and
the pydantic result models below, so any implementation (HTTP client, local
model, test fake) can be plugged in through ``Collaborators``.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Shared
# =============================================================================


class SourceCacheEntry(BaseModel):
    """A retrieved source available to the section writer.

    Extra keys returned by the retrieval service are preserved.
    """

    model_config = ConfigDict(extra="allow")

    url: str
    title: str = ""
    facts: list[str] = Field(default_factory=list)
    content: Optional[str] = None


class PageContext(BaseModel):
    """Page identity passed to collaborators."""

    title: str
    type: str
    entity_id: str


# =============================================================================
# Retrieval
# =============================================================================


class ResearchResult(BaseModel):
    sources: list[SourceCacheEntry] = Field(default_factory=list)
    cost: float = 0.0
    providers_used: list[str] = Field(default_factory=list)


@runtime_checkable
class Retriever(Protocol):
    async def research(
        self,
        *,
        topic: str,
        query: Optional[str],
        page_context: PageContext,
        cost_cap: float,
    ) -> ResearchResult: ...


# =============================================================================
# Section writer
# =============================================================================


class WriterConstraints(BaseModel):
    """Grounding constraints for one section rewrite.

    Attributes:
        allow_ungrounded_claims: Writer may rely on its own knowledge
        require_claim_map: Writer must map every claim to a cached source
    """

    allow_ungrounded_claims: bool
    require_claim_map: bool


class SectionRewriteResult(BaseModel):
    content: str
    claim_map: list[dict[str, Any]] = Field(default_factory=list)
    unsourceable_claims: list[str] = Field(default_factory=list)


@runtime_checkable
class SectionWriter(Protocol):
    async def rewrite_section(
        self,
        *,
        section_id: str,
        section_text: str,
        page_context: PageContext,
        source_cache: Sequence[SourceCacheEntry],
        directions: str,
        constraints: WriterConstraints,
        model: str,
    ) -> SectionRewriteResult: ...


# =============================================================================
# Citation auditor
# =============================================================================


class CitationVerdict(str, Enum):
    VERIFIED = "verified"
    UNSUPPORTED = "unsupported"
    MISATTRIBUTED = "misattributed"
    URL_DEAD = "url-dead"
    UNCHECKED = "unchecked"


class CitationCheck(BaseModel):
    """Verdict for one footnote citation."""

    ref: str
    claim: str = ""
    verdict: CitationVerdict
    explanation: str = ""


class AuditSummary(BaseModel):
    total: int = 0
    verified: int = 0
    failed: int = 0
    misattributed: int = 0
    unchecked: int = 0


class CitationAuditResult(BaseModel):
    citations: list[CitationCheck] = Field(default_factory=list)
    summary: AuditSummary = Field(default_factory=AuditSummary)
    passed: bool = False


@runtime_checkable
class CitationAuditor(Protocol):
    async def audit(
        self,
        *,
        content: str,
        fetch_missing: bool,
        pass_threshold: float,
    ) -> CitationAuditResult: ...


# =============================================================================
# Enrichers
# =============================================================================


class Replacement(BaseModel):
    """One annotation inserted by an enricher."""

    model_config = ConfigDict(extra="allow")

    search_text: str
    entity_id: Optional[str] = None
    fact_id: Optional[str] = None


class EnrichmentResult(BaseModel):
    content: str
    replacements: list[Replacement] = Field(default_factory=list)
    inserted_count: Optional[int] = Field(
        default=None,
        description="Reported insert count; defaults to len(replacements) when absent",
    )

    @property
    def count(self) -> int:
        return self.inserted_count if self.inserted_count is not None else len(self.replacements)


@runtime_checkable
class ContentEnricher(Protocol):
    """Inserts ``<EntityLink>`` or ``<F>`` annotations into page content."""

    async def enrich(self, content: str, *, page_id: str) -> EnrichmentResult: ...


# =============================================================================
# Rule engine
# =============================================================================


class RuleIssue(BaseModel):
    rule: str
    message: str
    line: Optional[int] = None
    is_fixable: bool = False

    def __str__(self) -> str:
        if self.line is not None:
            return f"line {self.line}: {self.message}"
        return self.message


class RuleReport(BaseModel):
    rule: str
    issues: list[RuleIssue] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.issues)


class ValidationReport(BaseModel):
    critical: list[RuleReport] = Field(default_factory=list)
    quality: list[RuleReport] = Field(default_factory=list)

    def fixable_issues(self) -> list[RuleIssue]:
        return [
            issue
            for report in (*self.critical, *self.quality)
            for issue in report.issues
            if issue.is_fixable
        ]


@runtime_checkable
class RuleEngine(Protocol):
    """Pattern-matching content validator operating on a file on disk."""

    async def validate(
        self,
        file_path: Path,
        critical_rules: Sequence[str],
        quality_rules: Sequence[str],
    ) -> ValidationReport: ...

    async def apply_fixes(self, file_path: Path, issues: Sequence[RuleIssue]) -> int: ...


# =============================================================================
# Bundle
# =============================================================================


@dataclass
class Collaborators:
    """External services available to one run.

    A missing collaborator makes its tool return an error payload instead of
    failing the run.
    """

    retriever: Optional[Retriever] = None
    section_writer: Optional[SectionWriter] = None
    citation_auditor: Optional[CitationAuditor] = None
    link_enricher: Optional[ContentEnricher] = None
    fact_enricher: Optional[ContentEnricher] = None
    rule_engine: Optional[RuleEngine] = None


__all__ = [
    "SourceCacheEntry",
    "PageContext",
    "ResearchResult",
    "Retriever",
    "WriterConstraints",
    "SectionRewriteResult",
    "SectionWriter",
    "CitationVerdict",
    "CitationCheck",
    "AuditSummary",
    "CitationAuditResult",
    "CitationAuditor",
    "Replacement",
    "EnrichmentResult",
    "ContentEnricher",
    "RuleIssue",
    "RuleReport",
    "ValidationReport",
    "RuleEngine",
    "Collaborators",
]
