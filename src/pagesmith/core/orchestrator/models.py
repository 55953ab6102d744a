"""Orchestrator models: tiers, tool names, budgets and run records."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class OrchestratorTier(str, Enum):
    """Budget tier selecting the tool-call limits and enabled tools."""

    POLISH = "polish"
    STANDARD = "standard"
    DEEP = "deep"


class OrchestratorMode(str, Enum):
    """Whether the run improves an existing page or fills a new one."""

    IMPROVE = "improve"
    CREATE = "create"


class ToolName(str, Enum):
    """Closed set of tools the agent may call."""

    READ_PAGE = "read_page"
    GET_PAGE_METRICS = "get_page_metrics"
    SPLIT_INTO_SECTIONS = "split_into_sections"
    RUN_RESEARCH = "run_research"
    REWRITE_SECTION = "rewrite_section"
    AUDIT_CITATIONS = "audit_citations"
    ADD_ENTITY_LINKS = "add_entity_links"
    ADD_FACT_REFS = "add_fact_refs"
    VALIDATE_CONTENT = "validate_content"


# =============================================================================
# Budget tiers
# =============================================================================


@dataclass(frozen=True)
class BudgetConfig:
    """Per-tier budget.

    Attributes:
        name: Human-readable tier name
        max_tool_calls: Maximum number of tool calls the agent may make
        max_research_queries: Maximum research queries (0 disables research)
        enabled_tools: Tools declared to the agent for this tier
        cost_estimate: Display string for the expected spend
    """

    name: str
    max_tool_calls: int
    max_research_queries: int
    enabled_tools: frozenset[ToolName]
    cost_estimate: str


_ALL_TOOLS: frozenset[ToolName] = frozenset(ToolName)

TIER_BUDGETS: dict[OrchestratorTier, BudgetConfig] = {
    OrchestratorTier.POLISH: BudgetConfig(
        name="Polish",
        max_tool_calls=12,
        max_research_queries=0,
        enabled_tools=_ALL_TOOLS - {ToolName.RUN_RESEARCH, ToolName.AUDIT_CITATIONS},
        cost_estimate="$2-4",
    ),
    OrchestratorTier.STANDARD: BudgetConfig(
        name="Standard",
        max_tool_calls=20,
        max_research_queries=5,
        enabled_tools=_ALL_TOOLS,
        cost_estimate="$5-10",
    ),
    OrchestratorTier.DEEP: BudgetConfig(
        name="Deep",
        max_tool_calls=50,
        max_research_queries=15,
        enabled_tools=_ALL_TOOLS,
        cost_estimate="$10-25",
    ),
}


def resolve_tier(tier: Union[OrchestratorTier, str]) -> OrchestratorTier:
    """Coerce a tier name to ``OrchestratorTier``.

    Raises:
        ValueError: If the name is not a known tier
    """
    if isinstance(tier, OrchestratorTier):
        return tier
    try:
        return OrchestratorTier(str(tier).strip().lower())
    except ValueError:
        valid = ", ".join(t.value for t in OrchestratorTier)
        raise ValueError(f"Unknown orchestrator tier '{tier}'. Valid tiers: {valid}") from None


def get_budget(tier: Union[OrchestratorTier, str]) -> BudgetConfig:
    return TIER_BUDGETS[resolve_tier(tier)]


# =============================================================================
# Run records
# =============================================================================


class ToolCostEntry(BaseModel):
    """Estimated cost of a single tool call."""

    model_config = ConfigDict(frozen=True)

    tool_name: str = Field(..., description="Name of the tool that was called")
    cost: float = Field(..., description="Static cost estimate in USD")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QualityMetrics(BaseModel):
    """Structural metrics of a page, derived deterministically from its text."""

    model_config = ConfigDict(frozen=True)

    word_count: int = 0
    footnote_count: int = 0
    entity_link_count: int = 0
    diagram_count: int = 0
    table_count: int = 0
    section_count: int = 0
    structural_score: int = Field(default=0, ge=0, le=100)


class QualityGateResult(BaseModel):
    """Outcome of a quality-gate evaluation.

    ``gaps`` is ordered and always complete; an empty list means the gate
    passed.
    """

    model_config = ConfigDict(frozen=True)

    passed: bool
    metrics: QualityMetrics
    gap_summary: str
    gaps: list[str] = Field(default_factory=list)


class OrchestratorResult(BaseModel):
    """Final record of one orchestrator run."""

    model_config = ConfigDict(frozen=True)

    page_id: str
    title: str
    tier: OrchestratorTier
    directions: str = ""
    duration: float = Field(..., description="Wall-clock duration in seconds")
    tool_call_count: int
    refinement_cycles: int
    total_cost: float
    cost_breakdown: dict[str, float] = Field(default_factory=dict)
    quality_metrics: QualityMetrics
    quality_gate_passed: bool
    output_path: str = Field(default="", description="Set by the pipeline once output is written")
    final_content: str


# =============================================================================
# Inputs
# =============================================================================


class PageData(BaseModel):
    """Identity and metadata of the page being improved."""

    id: str
    title: str
    path: str = ""
    quality: Optional[float] = None
    reader_importance: Optional[float] = None
    entity_type: Optional[str] = None


class OrchestratorOptions(BaseModel):
    """Per-run options.

    Model overrides fall back to ``OrchestratorConfig`` when unset.
    """

    tier: OrchestratorTier = OrchestratorTier.STANDARD
    directions: str = ""
    dry_run: bool = False
    orchestrator_model: Optional[str] = None
    writer_model: Optional[str] = None
    mode: OrchestratorMode = OrchestratorMode.IMPROVE
    topic: Optional[str] = None

    @model_validator(mode="after")
    def _require_topic_for_create(self) -> "OrchestratorOptions":
        if self.mode == OrchestratorMode.CREATE and not (self.topic or "").strip():
            raise ValueError("Create mode requires a topic")
        return self


__all__ = [
    "OrchestratorTier",
    "OrchestratorMode",
    "ToolName",
    "BudgetConfig",
    "TIER_BUDGETS",
    "resolve_tier",
    "get_budget",
    "ToolCostEntry",
    "QualityMetrics",
    "QualityGateResult",
    "OrchestratorResult",
    "PageData",
    "OrchestratorOptions",
]
