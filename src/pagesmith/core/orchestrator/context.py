"""Run-scoped mutable state shared by the tool handlers."""

from __future__ import annotations

import logging
from dataclasses import InitVar, dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from pagesmith.core.orchestrator.collaborators import CitationCheck, SourceCacheEntry
from pagesmith.core.orchestrator.models import BudgetConfig, PageData, ToolCostEntry
from pagesmith.core.orchestrator.sections import SplitPage, split_into_sections

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorContext:
    """State of one orchestrator run.

    Owned by a single run and never shared. ``original_content`` is fixed at
    construction; every accepted edit goes through ``replace_content`` so the
    cached section split can never describe stale text.

    Attributes:
        page: Page identity
        file_path: Page file on disk (used by validation)
        budget: Tier budget for the run
        directions: Free-text directions from the caller
        current_content: Latest accepted page text
        source_cache: Retrieved sources, unique by URL, in arrival order
        split_page: Cached section split of ``current_content`` (or None)
        tool_call_count: Tool calls made so far (monotonic)
        research_query_count: Research queries attempted so far
        cost_entries: Append-only per-call cost ledger
        total_cost: Estimated spend so far (USD)
        citation_audit: Per-citation verdicts from the latest audit
    """

    page: PageData
    file_path: Path
    content: InitVar[str]
    budget: BudgetConfig
    directions: str = ""
    current_content: str = field(init=False)
    source_cache: list[SourceCacheEntry] = field(default_factory=list)
    split_page: Optional[SplitPage] = None
    tool_call_count: int = 0
    research_query_count: int = 0
    cost_entries: list[ToolCostEntry] = field(default_factory=list)
    total_cost: float = 0.0
    citation_audit: Optional[list[CitationCheck]] = None

    def __post_init__(self, content: str) -> None:
        self._original_content = content
        self.current_content = content
        self.file_path = Path(self.file_path)

    @property
    def original_content(self) -> str:
        return self._original_content

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def replace_content(self, content: str, *, split: Optional[SplitPage] = None) -> None:
        """Accept new page text.

        ``split`` is the split that *content* was reassembled from; when
        omitted the cached split is dropped.
        """
        self.current_content = content
        self.split_page = split

    def invalidate_split(self) -> None:
        self.split_page = None

    def ensure_split(self) -> SplitPage:
        """Return the cached split, computing it from the current text if needed."""
        if self.split_page is None:
            self.split_page = split_into_sections(self.current_content)
        return self.split_page

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_sources(self, sources: Iterable[SourceCacheEntry]) -> int:
        """Merge sources by URL, returning how many were new."""
        known = {source.url for source in self.source_cache}
        added = 0
        for source in sources:
            if source.url in known:
                continue
            self.source_cache.append(source)
            known.add(source.url)
            added += 1
        return added

    # ------------------------------------------------------------------
    # Budget
    # ------------------------------------------------------------------

    def record_tool_call(self, tool_name: str, cost: float) -> ToolCostEntry:
        self.tool_call_count += 1
        entry = ToolCostEntry(tool_name=tool_name, cost=cost)
        self.cost_entries.append(entry)
        self.total_cost += cost
        return entry

    @property
    def remaining_tool_calls(self) -> int:
        return max(0, self.budget.max_tool_calls - self.tool_call_count)

    @property
    def budget_exhausted(self) -> bool:
        return self.tool_call_count >= self.budget.max_tool_calls

    def budget_status(self) -> str:
        return (
            f"[Budget: {self.tool_call_count}/{self.budget.max_tool_calls} tool calls used, "
            f"~${self.total_cost:.2f} spent]"
        )

    def cost_breakdown(self) -> dict[str, float]:
        """Sum ledger costs per tool, in first-call order."""
        breakdown: dict[str, float] = {}
        for entry in self.cost_entries:
            breakdown[entry.tool_name] = breakdown.get(entry.tool_name, 0.0) + entry.cost
        return breakdown


__all__ = ["OrchestratorContext"]
