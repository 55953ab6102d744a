"""Tools exposed to the orchestration agent.

Each tool has a stable ``ToolName``, a description the agent reads, and a
pydantic input schema whose JSON schema is declared to the agent. Handlers
are methods of ``ToolHandlers`` operating on one ``OrchestratorContext``;
``build_tool_registry`` wraps them with call counting, cost booking and the
budget footer the agent sees after every result.

Handlers are total: any failure, including invalid input, comes back as a
``{"error": "..."}`` payload.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union, assert_never

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pagesmith.config.orchestrator import OrchestratorConfig, get_config
from pagesmith.core.llm_provider import ToolDefinition
from pagesmith.core.orchestrator.collaborators import Collaborators, PageContext, WriterConstraints
from pagesmith.core.orchestrator.context import OrchestratorContext
from pagesmith.core.orchestrator.footnotes import renumber_footnotes
from pagesmith.core.orchestrator.metrics import extract_quality_metrics
from pagesmith.core.orchestrator.models import ToolName
from pagesmith.core.orchestrator.sections import (
    filter_sources_for_section,
    reassemble_sections,
    split_into_sections,
)

logger = logging.getLogger(__name__)

ToolFunc = Callable[[Mapping[str, Any]], Awaitable[str]]

CRITICAL_RULES: tuple[str, ...] = (
    "dollar-signs",
    "comparison-operators",
    "frontmatter-schema",
    "entitylink-ids",
    "prefer-entitylink",
    "internal-links",
    "fake-urls",
    "component-props",
    "citation-urls",
)

QUALITY_RULES: tuple[str, ...] = (
    "tilde-dollar",
    "markdown-lists",
    "consecutive-bold-labels",
    "placeholders",
    "vague-citations",
    "temporal-artifacts",
)

TABLE_PRESERVATION_DIRECTIVE = (
    "Preserve any existing Markdown tables. Improve their data if needed "
    "but do not replace them with prose."
)

MAX_REPORTED_REPLACEMENTS = 10
MAX_ISSUE_DETAILS = 3
MAX_CLAIM_CHARS = 100

_SELF_ENTITY_RE = re.compile(r'<DataInfoBox\s+entityId="([^"]+)"')


# =============================================================================
# Input schemas
# =============================================================================


class NoInput(BaseModel):
    """Input schema for tools that take no arguments."""

    model_config = ConfigDict(extra="ignore")


class RunResearchInput(BaseModel):
    topic: str = Field(
        ...,
        min_length=1,
        description='The topic to research (e.g. "Anthropic constitutional AI safety")',
    )
    query: Optional[str] = Field(
        default=None,
        description="Optional more specific search query (defaults to topic)",
    )


class RewriteSectionInput(BaseModel):
    section_id: str = Field(
        ...,
        min_length=1,
        description='The section ID to rewrite (from split_into_sections output, e.g. "background")',
    )
    directions: Optional[str] = Field(
        default=None,
        description="Specific improvement directions for this section (optional, general directions are already provided)",
    )


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_model: type[BaseModel]

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name.value,
            description=self.description,
            input_schema=self.input_model.model_json_schema(),
        )


TOOL_SPECS: dict[ToolName, ToolSpec] = {
    ToolName.READ_PAGE: ToolSpec(
        ToolName.READ_PAGE,
        "Read the current page content. Returns the full MDX content including frontmatter. "
        "Use this to understand the current state of the page before making changes.",
        NoInput,
    ),
    ToolName.GET_PAGE_METRICS: ToolSpec(
        ToolName.GET_PAGE_METRICS,
        "Extract quality metrics from the current page content: word count, footnote/citation count, "
        "EntityLink count, diagram count, table count, section count, and structural score.",
        NoInput,
    ),
    ToolName.SPLIT_INTO_SECTIONS: ToolSpec(
        ToolName.SPLIT_INTO_SECTIONS,
        "Split the current page into ## sections. Returns the list of section IDs and their headings. "
        "Use this to plan which sections to rewrite.",
        NoInput,
    ),
    ToolName.RUN_RESEARCH: ToolSpec(
        ToolName.RUN_RESEARCH,
        "Run multi-source research on a topic. Fetches source URLs and extracts structured facts. "
        "Results are added to the source cache for use by rewrite_section. Cost: $1-3 per call.",
        RunResearchInput,
    ),
    ToolName.REWRITE_SECTION: ToolSpec(
        ToolName.REWRITE_SECTION,
        "Rewrite a single ## section of the page. Uses the source cache for grounded, cited content. "
        "Each call improves one section, so call it once per section. The section must exist in the "
        "current page. Cost: $0.10-0.30 per section.",
        RewriteSectionInput,
    ),
    ToolName.AUDIT_CITATIONS: ToolSpec(
        ToolName.AUDIT_CITATIONS,
        "Verify all citations on the current page against their source URLs. Returns per-citation "
        "verdicts (verified, unsupported, misattributed, url-dead). Use after rewriting to check "
        "citation quality. Cost: $0.10-0.30.",
        NoInput,
    ),
    ToolName.ADD_ENTITY_LINKS: ToolSpec(
        ToolName.ADD_ENTITY_LINKS,
        "Scan the current page content and insert <EntityLink> tags for entity mentions that are not "
        "yet linked. Idempotent and safe to call multiple times. Cost: ~$0.05.",
        NoInput,
    ),
    ToolName.ADD_FACT_REFS: ToolSpec(
        ToolName.ADD_FACT_REFS,
        "Scan the current page content and wrap hardcoded numbers with <F> (canonical fact) tags where "
        "matching facts exist in the data layer. Idempotent. Cost: ~$0.05.",
        NoInput,
    ),
    ToolName.VALIDATE_CONTENT: ToolSpec(
        ToolName.VALIDATE_CONTENT,
        "Run validation checks on the current content: dollar-sign escaping, comparison operators, "
        "frontmatter schema, EntityLink IDs and more. Auto-fixes what it can. Returns critical and "
        "quality issues. Cost: $0 (no LLM).",
        NoInput,
    ),
}


def _coerce_tool_names(names: Iterable[Union[ToolName, str]]) -> list[ToolName]:
    """Known tool names among *names*, in registry order; unknown names are dropped."""
    wanted: set[ToolName] = set()
    for name in names:
        try:
            wanted.add(ToolName(name))
        except ValueError:
            logger.warning("Ignoring unknown tool name '%s'", name)
    return [name for name in TOOL_SPECS if name in wanted]


def build_tool_definitions(enabled_tools: Iterable[Union[ToolName, str]]) -> list[ToolDefinition]:
    """Declarations for the enabled subset of tools."""
    return [TOOL_SPECS[name].definition() for name in _coerce_tool_names(enabled_tools)]


def _to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2)


def _error(message: str) -> str:
    return json.dumps({"error": message})


# =============================================================================
# Handlers
# =============================================================================


class ToolHandlers:
    """Tool implementations bound to one run's context and collaborators."""

    def __init__(
        self,
        context: OrchestratorContext,
        collaborators: Collaborators,
        *,
        writer_model: Optional[str] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        if not isinstance(context, OrchestratorContext):
            raise TypeError(f"ToolHandlers requires an OrchestratorContext, got {type(context).__name__}")
        if not isinstance(collaborators, Collaborators):
            raise TypeError(f"ToolHandlers requires a Collaborators bundle, got {type(collaborators).__name__}")
        self.context = context
        self.collaborators = collaborators
        self.config = config or get_config()
        self.writer_model = writer_model or self.config.writer_model

    async def dispatch(self, name: ToolName, tool_input: Optional[Mapping[str, Any]] = None) -> str:
        """Validate *tool_input* and run the handler for *name*."""
        spec = TOOL_SPECS[name]
        try:
            params = spec.input_model.model_validate(dict(tool_input or {}))
        except ValidationError as exc:
            return _error(f"Invalid input for {name.value}: {exc}")

        try:
            if name == ToolName.READ_PAGE:
                return self.read_page()
            if name == ToolName.GET_PAGE_METRICS:
                return self.get_page_metrics()
            if name == ToolName.SPLIT_INTO_SECTIONS:
                return self.split_into_sections()
            if name == ToolName.RUN_RESEARCH:
                assert isinstance(params, RunResearchInput)
                return await self.run_research(params)
            if name == ToolName.REWRITE_SECTION:
                assert isinstance(params, RewriteSectionInput)
                return await self.rewrite_section(params)
            if name == ToolName.AUDIT_CITATIONS:
                return await self.audit_citations()
            if name == ToolName.ADD_ENTITY_LINKS:
                return await self.add_entity_links()
            if name == ToolName.ADD_FACT_REFS:
                return await self.add_fact_refs()
            if name == ToolName.VALIDATE_CONTENT:
                return await self.validate_content()
            assert_never(name)
        except Exception as exc:
            logger.exception("Tool %s raised unexpectedly", name.value)
            return _error(f"{name.value} failed: {exc}")

    # ------------------------------------------------------------------
    # Read-only tools
    # ------------------------------------------------------------------

    def read_page(self) -> str:
        return self.context.current_content

    def get_page_metrics(self) -> str:
        metrics = extract_quality_metrics(self.context.current_content)
        return _to_json(
            {
                "wordCount": metrics.word_count,
                "footnoteCount": metrics.footnote_count,
                "entityLinkCount": metrics.entity_link_count,
                "diagramCount": metrics.diagram_count,
                "tableCount": metrics.table_count,
                "sectionCount": metrics.section_count,
                "structuralScore": metrics.structural_score,
            }
        )

    def split_into_sections(self) -> str:
        split = split_into_sections(self.context.current_content)
        self.context.split_page = split
        return _to_json(
            {
                "sectionCount": len(split.sections),
                "hasFrontmatter": bool(split.frontmatter),
                "preambleLength": len(split.preamble.split()),
                "sections": [
                    {"id": s.id, "heading": s.heading.strip(), "wordCount": s.word_count}
                    for s in split.sections
                ],
            }
        )

    # ------------------------------------------------------------------
    # Research and writing
    # ------------------------------------------------------------------

    def _page_context(self, default_type: str) -> PageContext:
        page = self.context.page
        return PageContext(title=page.title, type=page.entity_type or default_type, entity_id=page.id)

    async def run_research(self, params: RunResearchInput) -> str:
        ctx = self.context
        ctx.research_query_count += 1
        if ctx.research_query_count > ctx.budget.max_research_queries:
            return _error(
                f"Research query budget exceeded (max {ctx.budget.max_research_queries} for "
                f"{ctx.budget.name} tier). Improve the page with existing sources."
            )

        retriever = self.collaborators.retriever
        if retriever is None:
            return _error("Research failed: no retrieval service is configured")

        try:
            result = await retriever.research(
                topic=params.topic,
                query=params.query or None,
                page_context=self._page_context("unknown"),
                cost_cap=self.config.research_cost_cap,
            )
        except Exception as exc:
            logger.warning("Research failed for topic '%s': %s", params.topic, exc)
            return _error(f"Research failed: {exc}")

        added = ctx.add_sources(result.sources)
        logger.debug("Research '%s': %d source(s), %d new", params.topic, len(result.sources), added)
        return _to_json(
            {
                "sourcesFound": len(result.sources),
                "newSourcesAdded": added,
                "totalSourceCache": len(ctx.source_cache),
                "cost": result.cost,
                "providers": result.providers_used,
            }
        )

    async def rewrite_section(self, params: RewriteSectionInput) -> str:
        ctx = self.context
        split = ctx.ensure_split()
        section = split.find(params.section_id)
        if section is None:
            available = ", ".join(split.section_ids) or "none"
            return _error(f'Section "{params.section_id}" not found. Available sections: {available}')

        writer = self.collaborators.section_writer
        if writer is None:
            return _error("Section rewrite failed: no section writer is configured")

        sources = filter_sources_for_section(section, ctx.source_cache)
        directions = "\n".join(
            part for part in (ctx.directions, params.directions, TABLE_PRESERVATION_DIRECTIVE) if part
        )

        try:
            result = await writer.rewrite_section(
                section_id=section.id,
                section_text=section.content,
                page_context=self._page_context("wiki-page"),
                source_cache=sources,
                directions=directions,
                constraints=WriterConstraints(
                    allow_ungrounded_claims=not sources,
                    require_claim_map=bool(sources),
                ),
                model=self.writer_model,
            )
        except Exception as exc:
            logger.warning("Rewrite of section '%s' failed: %s", section.id, exc)
            return _error(f"Section rewrite failed: {exc}")

        updated = split.with_section_content(section.id, result.content)
        content = renumber_footnotes(reassemble_sections(updated))
        ctx.replace_content(content, split=split_into_sections(content))

        return _to_json(
            {
                "sectionId": section.id,
                "claimMapEntries": len(result.claim_map),
                "unsourceableClaims": len(result.unsourceable_claims),
                "wordsBefore": section.word_count,
                "wordsAfter": len(result.content.split()),
            }
        )

    async def audit_citations(self) -> str:
        auditor = self.collaborators.citation_auditor
        if auditor is None:
            return _error("Citation audit failed: no citation auditor is configured")

        try:
            result = await auditor.audit(
                content=self.context.current_content,
                fetch_missing=True,
                pass_threshold=self.config.citation_pass_threshold,
            )
        except Exception as exc:
            logger.warning("Citation audit failed: %s", exc)
            return _error(f"Citation audit failed: {exc}")

        self.context.citation_audit = list(result.citations)
        summary = result.summary
        return _to_json(
            {
                "total": summary.total,
                "verified": summary.verified,
                "failed": summary.failed,
                "misattributed": summary.misattributed,
                "unchecked": summary.unchecked,
                "pass": result.passed,
                "failedCitations": [
                    {
                        "footnoteRef": c.ref,
                        "claim": c.claim[:MAX_CLAIM_CHARS],
                        "verdict": c.verdict.value,
                        "explanation": c.explanation,
                    }
                    for c in result.citations
                    if c.verdict.value in ("unsupported", "misattributed")
                ],
            }
        )

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def add_entity_links(self) -> str:
        ctx = self.context
        enricher = self.collaborators.link_enricher
        if enricher is None:
            return _error("Entity link enrichment failed: no link enricher is configured")

        try:
            result = await enricher.enrich(ctx.current_content, page_id=ctx.page.id)
        except Exception as exc:
            logger.warning("Entity link enrichment failed: %s", exc)
            return _error(f"Entity link enrichment failed: {exc}")

        content = result.content
        replacements = list(result.replacements)

        # A page never links to its own entity
        self_match = _SELF_ENTITY_RE.search(ctx.current_content)
        if self_match:
            self_id = self_match.group(1)
            self_link = re.compile(
                rf'<EntityLink\s[^>]*id="{re.escape(self_id)}"[^>]*>([\s\S]*?)</EntityLink>'
            )
            content = self_link.sub(r"\1", content)
            replacements = [r for r in replacements if r.entity_id != self_id]

        ctx.replace_content(content)
        return _to_json(
            {
                "insertedCount": len(replacements),
                "replacements": [
                    {"text": r.search_text, "entityId": r.entity_id}
                    for r in replacements[:MAX_REPORTED_REPLACEMENTS]
                ],
            }
        )

    async def add_fact_refs(self) -> str:
        ctx = self.context
        enricher = self.collaborators.fact_enricher
        if enricher is None:
            return _error("Fact ref enrichment failed: no fact enricher is configured")

        try:
            result = await enricher.enrich(ctx.current_content, page_id=ctx.page.id)
        except Exception as exc:
            logger.warning("Fact ref enrichment failed: %s", exc)
            return _error(f"Fact ref enrichment failed: {exc}")

        ctx.replace_content(result.content)
        return _to_json(
            {
                "insertedCount": result.count,
                "replacements": [
                    {"text": r.search_text, "entityId": r.entity_id, "factId": r.fact_id}
                    for r in result.replacements[:MAX_REPORTED_REPLACEMENTS]
                ],
            }
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_content(self) -> str:
        ctx = self.context
        engine = self.collaborators.rule_engine
        if engine is None:
            return _error("Validation failed: no rule engine is configured")

        path = ctx.file_path
        try:
            snapshot: Optional[str] = path.read_text(encoding="utf-8") if path.exists() else None
        except OSError as exc:
            return _error(f"Validation failed: {exc}")

        try:
            path.write_text(ctx.current_content, encoding="utf-8")
            report = await engine.validate(path, CRITICAL_RULES, QUALITY_RULES)

            fixable = report.fixable_issues()
            if fixable:
                await engine.apply_fixes(path, fixable)
                ctx.replace_content(path.read_text(encoding="utf-8"))

            return _to_json(
                {
                    "criticalIssues": [
                        {
                            "rule": r.rule,
                            "count": r.count,
                            "details": [str(issue) for issue in r.issues[:MAX_ISSUE_DETAILS]],
                        }
                        for r in report.critical
                        if r.count > 0
                    ],
                    "qualityWarnings": [
                        {"rule": r.rule, "count": r.count} for r in report.quality if r.count > 0
                    ],
                    "autoFixesApplied": len(fixable),
                }
            )
        except Exception as exc:
            logger.warning("Validation failed for %s: %s", path, exc)
            return _error(f"Validation failed: {exc}")
        finally:
            if snapshot is None:
                path.unlink(missing_ok=True)
            else:
                path.write_text(snapshot, encoding="utf-8")


# =============================================================================
# Tracking
# =============================================================================


def build_tool_registry(
    handlers: ToolHandlers,
    enabled_tools: Iterable[Union[ToolName, str]],
    cost_estimates: Optional[Mapping[str, float]] = None,
) -> dict[str, ToolFunc]:
    """Map each enabled tool name to a tracked handler.

    Every call increments the context's call counter and books the tool's
    static cost estimate before the handler runs, whatever its outcome, and
    the result is suffixed with the budget status line.
    """
    costs = cost_estimates if cost_estimates is not None else handlers.config.tool_cost_estimates
    ctx = handlers.context

    def track(name: ToolName) -> ToolFunc:
        cost = float(costs.get(name.value, 0.0))

        async def tracked(tool_input: Mapping[str, Any]) -> str:
            ctx.record_tool_call(name.value, cost)
            result = await handlers.dispatch(name, tool_input)
            return f"{result}\n\n{ctx.budget_status()}"

        return tracked

    return {name.value: track(name) for name in _coerce_tool_names(enabled_tools)}


__all__ = [
    "CRITICAL_RULES",
    "QUALITY_RULES",
    "TABLE_PRESERVATION_DIRECTIVE",
    "NoInput",
    "RunResearchInput",
    "RewriteSectionInput",
    "ToolSpec",
    "TOOL_SPECS",
    "ToolFunc",
    "ToolHandlers",
    "build_tool_definitions",
    "build_tool_registry",
]
