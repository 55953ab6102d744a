"""Agent orchestrator for wiki page improvement.

The orchestrator gives a reasoning agent the page-editing modules as tools
and lets it decide what the page needs, under a per-tier tool-call budget.
A quality gate closes the loop with bounded refinement cycles.

Usage:
    from pagesmith.core.orchestrator import run_orchestrator, OrchestratorOptions

    result = await run_orchestrator(
        page, file_path, content, OrchestratorOptions(tier="polish"),
        agent=agent, collaborators=collaborators,
    )
"""

from pagesmith.core.orchestrator.collaborators import (
    CitationAuditor,
    Collaborators,
    ContentEnricher,
    Retriever,
    RuleEngine,
    SectionWriter,
    SourceCacheEntry,
)
from pagesmith.core.orchestrator.context import OrchestratorContext
from pagesmith.core.orchestrator.footnotes import deduplicate_footnotes, renumber_footnotes
from pagesmith.core.orchestrator.loop import AgentLoop, LoopState
from pagesmith.core.orchestrator.metrics import extract_quality_metrics
from pagesmith.core.orchestrator.models import (
    TIER_BUDGETS,
    BudgetConfig,
    OrchestratorMode,
    OrchestratorOptions,
    OrchestratorResult,
    OrchestratorTier,
    PageData,
    QualityGateResult,
    QualityMetrics,
    ToolCostEntry,
    ToolName,
    get_budget,
)
from pagesmith.core.orchestrator.orchestrator import run_orchestrator
from pagesmith.core.orchestrator.pipeline import run_orchestrator_pipeline
from pagesmith.core.orchestrator.quality_gate import evaluate_quality_gate
from pagesmith.core.orchestrator.sections import split_into_sections, reassemble_sections
from pagesmith.core.orchestrator.tools import ToolHandlers, build_tool_definitions, build_tool_registry

__all__ = [
    # Models
    "OrchestratorTier",
    "OrchestratorMode",
    "ToolName",
    "BudgetConfig",
    "TIER_BUDGETS",
    "get_budget",
    "ToolCostEntry",
    "QualityMetrics",
    "QualityGateResult",
    "OrchestratorResult",
    "PageData",
    "OrchestratorOptions",
    # Collaborators
    "Collaborators",
    "Retriever",
    "SectionWriter",
    "CitationAuditor",
    "ContentEnricher",
    "RuleEngine",
    "SourceCacheEntry",
    # Runtime
    "OrchestratorContext",
    "ToolHandlers",
    "build_tool_definitions",
    "build_tool_registry",
    "AgentLoop",
    "LoopState",
    "evaluate_quality_gate",
    "run_orchestrator",
    "run_orchestrator_pipeline",
    # Text transforms
    "deduplicate_footnotes",
    "renumber_footnotes",
    "split_into_sections",
    "reassemble_sections",
    "extract_quality_metrics",
]
