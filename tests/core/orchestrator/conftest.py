"""Shared fixtures and fakes for orchestrator tests.

Provides ``make_context()`` / ``make_config()`` factories, a scripted
``FakeAgent`` and in-memory collaborator fakes so that every test builds
runs consistently.
"""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Optional, Sequence

import pytest

from pagesmith.config.orchestrator import OrchestratorConfig
from pagesmith.core.llm_provider import (
    AgentClient,
    AgentRequest,
    AgentResponse,
    StopReason,
    TextBlock,
    ToolCall,
)
from pagesmith.core.orchestrator.collaborators import (
    AuditSummary,
    CitationAuditResult,
    CitationCheck,
    CitationVerdict,
    Collaborators,
    EnrichmentResult,
    PageContext,
    Replacement,
    ResearchResult,
    RuleIssue,
    RuleReport,
    SectionRewriteResult,
    SourceCacheEntry,
    ValidationReport,
    WriterConstraints,
)
from pagesmith.core.orchestrator.context import OrchestratorContext
from pagesmith.core.orchestrator.models import PageData, get_budget

SAMPLE_PAGE = """---
title: Constitutional AI
lastEdited: "2024-01-15"
---
import {EntityLink, F} from '@components/wiki';

Constitutional AI is a training approach for language models.

## Overview

Constitutional AI trains a model against a written set of principles.[^1] It was
introduced by <EntityLink id="anthropic">Anthropic</EntityLink> in 2022.[^2]

## Background

Earlier work relied on human feedback for every judgement.[^3]

| Method | Feedback source |
| --- | --- |
| RLHF | Human raters |
| CAI | Principles |

## Sources

[^1]: Bai et al. (https://arxiv.org/abs/2212.08073)
[^2]: Anthropic blog (https://www.anthropic.com/research/constitutional-ai)
[^3]: Christiano et al. (https://arxiv.org/abs/1706.03741)
"""


def make_page(**overrides: Any) -> PageData:
    defaults: dict[str, Any] = {
        "id": "constitutional-ai",
        "title": "Constitutional AI",
        "path": "/knowledge-base/constitutional-ai/",
        "quality": 55,
        "reader_importance": 70,
        "entity_type": "approach",
    }
    defaults.update(overrides)
    return PageData(**defaults)


def make_config(**overrides: Any) -> OrchestratorConfig:
    """Config with heartbeat and retry delays disabled for fast tests."""
    defaults: dict[str, Any] = {
        "heartbeat_interval": 0,
        "agent_retry_base_delay": 0.0,
        "agent_retry_max_delay": 0.0,
    }
    defaults.update(overrides)
    return OrchestratorConfig(**defaults)


def make_context(
    *,
    content: str = SAMPLE_PAGE,
    tier: str = "standard",
    file_path: Optional[Path] = None,
    directions: str = "",
    page: Optional[PageData] = None,
) -> OrchestratorContext:
    return OrchestratorContext(
        page=page or make_page(),
        file_path=file_path or Path("/nonexistent/constitutional-ai.mdx"),
        content=content,
        budget=get_budget(tier),
        directions=directions,
    )


# ---------------------------------------------------------------------------
# Agent fakes
# ---------------------------------------------------------------------------

_call_ids = itertools.count(1)


def tool_call(name: str, call_id: Optional[str] = None, **tool_input: Any) -> ToolCall:
    return ToolCall(id=call_id or f"toolu_{next(_call_ids):04d}", name=name, input=tool_input)


def tool_response(*calls: ToolCall, text: str = "") -> AgentResponse:
    content: list = [TextBlock(text=text)] if text else []
    content.extend(calls)
    return AgentResponse(stop_reason=StopReason.TOOL_CALLS, content=content)


def text_response(*texts: str) -> AgentResponse:
    return AgentResponse(stop_reason=StopReason.FINISHED, content=[TextBlock(text=t) for t in texts])


class FakeAgent(AgentClient):
    """Agent that replays scripted responses and records every request.

    Items may be ``AgentResponse`` objects or exceptions to raise. Once the
    script runs out the agent finishes with a fixed summary.
    """

    name = "fake"
    default_model = "fake-model"

    def __init__(self, script: Sequence[Any] = ()):
        self.script = list(script)
        self.requests: list[AgentRequest] = []

    async def send(self, request: AgentRequest) -> AgentResponse:
        self.validate_request(request)
        self.requests.append(request)
        if not self.script:
            return text_response("Done.")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeRetriever:
    def __init__(self, sources: Sequence[SourceCacheEntry] = (), *, error: Optional[Exception] = None):
        self.sources = list(sources)
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def research(
        self, *, topic: str, query: Optional[str], page_context: PageContext, cost_cap: float
    ) -> ResearchResult:
        self.calls.append({"topic": topic, "query": query, "page_context": page_context, "cost_cap": cost_cap})
        if self.error:
            raise self.error
        return ResearchResult(sources=self.sources, cost=0.42, providers_used=["exa", "perplexity"])


class FakeSectionWriter:
    """Appends a sentence (and optionally a cited claim) to the section."""

    def __init__(self, *, addition: str = "Added sentence for testing.", error: Optional[Exception] = None):
        self.addition = addition
        self.error = error
        self.calls: list[dict[str, Any]] = []

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
    ) -> SectionRewriteResult:
        self.calls.append(
            {
                "section_id": section_id,
                "section_text": section_text,
                "page_context": page_context,
                "source_cache": list(source_cache),
                "directions": directions,
                "constraints": constraints,
                "model": model,
            }
        )
        if self.error:
            raise self.error
        return SectionRewriteResult(
            content=f"{section_text.rstrip()}\n\n{self.addition}",
            claim_map=[{"claim": self.addition, "source": "SRC-1"}],
            unsourceable_claims=[],
        )


class FakeAuditor:
    def __init__(self, citations: Sequence[CitationCheck] = (), *, passed: bool = True):
        self.citations = list(citations)
        self.passed = passed
        self.calls: list[dict[str, Any]] = []

    async def audit(self, *, content: str, fetch_missing: bool, pass_threshold: float) -> CitationAuditResult:
        self.calls.append({"content": content, "fetch_missing": fetch_missing, "pass_threshold": pass_threshold})
        verdicts = [c.verdict for c in self.citations]
        return CitationAuditResult(
            citations=self.citations,
            summary=AuditSummary(
                total=len(verdicts),
                verified=verdicts.count(CitationVerdict.VERIFIED),
                failed=verdicts.count(CitationVerdict.UNSUPPORTED),
                misattributed=verdicts.count(CitationVerdict.MISATTRIBUTED),
                unchecked=verdicts.count(CitationVerdict.UNCHECKED),
            ),
            passed=self.passed,
        )


class FakeEnricher:
    """Replaces the first occurrence of each mapping key with its value."""

    def __init__(self, mapping: Optional[dict[str, tuple[str, Replacement]]] = None):
        self.mapping = mapping or {}
        self.calls: list[dict[str, Any]] = []

    async def enrich(self, content: str, *, page_id: str) -> EnrichmentResult:
        self.calls.append({"content": content, "page_id": page_id})
        replacements = []
        for needle, (replacement_text, replacement) in self.mapping.items():
            if needle in content:
                content = content.replace(needle, replacement_text, 1)
                replacements.append(replacement)
        return EnrichmentResult(content=content, replacements=replacements)


class FakeRuleEngine:
    """Rule engine that reports a fixed set of issues.

    Fixable issues are "fixed" by replacing ``fix_from`` with ``fix_to`` in
    the file on disk.
    """

    def __init__(
        self,
        *,
        critical: Sequence[RuleReport] = (),
        quality: Sequence[RuleReport] = (),
        fix_from: str = "",
        fix_to: str = "",
        error: Optional[Exception] = None,
    ):
        self.critical = list(critical)
        self.quality = list(quality)
        self.fix_from = fix_from
        self.fix_to = fix_to
        self.error = error
        self.seen_content: list[str] = []
        self.validate_calls: list[dict[str, Any]] = []
        self.fixed: list[RuleIssue] = []

    async def validate(
        self, file_path: Path, critical_rules: Sequence[str], quality_rules: Sequence[str]
    ) -> ValidationReport:
        self.validate_calls.append(
            {"file_path": file_path, "critical_rules": list(critical_rules), "quality_rules": list(quality_rules)}
        )
        self.seen_content.append(file_path.read_text(encoding="utf-8"))
        if self.error:
            raise self.error
        return ValidationReport(critical=self.critical, quality=self.quality)

    async def apply_fixes(self, file_path: Path, issues: Sequence[RuleIssue]) -> int:
        self.fixed.extend(issues)
        text = file_path.read_text(encoding="utf-8")
        file_path.write_text(text.replace(self.fix_from, self.fix_to), encoding="utf-8")
        return len(issues)


def make_collaborators(**overrides: Any) -> Collaborators:
    defaults: dict[str, Any] = {
        "retriever": FakeRetriever(
            [
                SourceCacheEntry(
                    url="https://example.org/background",
                    title="Background of feedback methods",
                    facts=["RLHF uses human raters"],
                ),
            ]
        ),
        "section_writer": FakeSectionWriter(),
        "citation_auditor": FakeAuditor(),
        "link_enricher": FakeEnricher(),
        "fact_enricher": FakeEnricher(),
        "rule_engine": FakeRuleEngine(),
    }
    defaults.update(overrides)
    return Collaborators(**defaults)


@pytest.fixture
def config() -> OrchestratorConfig:
    return make_config()


@pytest.fixture
def page_file(tmp_path: Path) -> Path:
    """The sample page written to a temporary file."""
    path = tmp_path / "constitutional-ai.mdx"
    path.write_text(SAMPLE_PAGE, encoding="utf-8")
    return path
