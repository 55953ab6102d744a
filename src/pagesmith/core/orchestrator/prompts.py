"""Prompts for the orchestration agent.

The system prompt depends on the run mode (improve or create) and carries
the page identity and tier budget. Refinement cycles feed the quality-gate
gaps back as a follow-up task message.
"""

from __future__ import annotations

from pagesmith.core.orchestrator.context import OrchestratorContext
from pagesmith.core.orchestrator.models import BudgetConfig, QualityMetrics


def _format_optional(value: object) -> str:
    return "unknown" if value is None else str(value)


def _directions_line(directions: str) -> str:
    return f"\nUser directions: {directions}" if directions else ""


def _budget_block(budget: BudgetConfig) -> str:
    return (
        "## Budget\n\n"
        f"- Tier: **{budget.name}**\n"
        f"- Max tool calls: **{budget.max_tool_calls}**\n"
        f"- Max research queries: **{budget.max_research_queries}**\n"
        f"- Estimated cost: {budget.cost_estimate}"
    )


def build_initial_message(ctx: OrchestratorContext) -> str:
    """First user turn of an improve run."""
    return (
        f'Please improve the wiki page "{ctx.page.title}" (ID: {ctx.page.id}). '
        "Start by reading the page and assessing its current state."
    )


def build_create_initial_message(topic: str) -> str:
    return (
        f'Please create the wiki page about "{topic}". '
        "Start by researching the topic, then fill in each section of the page template."
    )


def build_improve_system_prompt(ctx: OrchestratorContext) -> str:
    page = ctx.page
    return f"""You are an expert wiki editor orchestrating the improvement of a wiki page. You have access to a set of specialized tools and must decide which to call based on what the page actually needs.

## Your Task

Improve the wiki page "{page.title}" (ID: {page.id}).
{_directions_line(ctx.directions)}
Current quality score: {_format_optional(page.quality)}
Reader importance: {_format_optional(page.reader_importance)}

{_budget_block(ctx.budget)}

Plan your tool calls carefully. You will see a budget counter after each tool result.

## Strategy

Follow this general approach, adapting based on the page's specific needs:

1. **Read and assess**: Start with `read_page` and `get_page_metrics` to understand the current state. Use `split_into_sections` to see the page structure.

2. **Plan improvements**: Based on what you see, decide which improvements are most valuable:
   - Low citation count: run `run_research` then `rewrite_section` on weak sections
   - Poor prose quality: `rewrite_section` on the weakest sections
   - Missing EntityLinks: `add_entity_links`
   - Hardcoded numbers: `add_fact_refs`
   - Validation errors: `validate_content`

3. **Execute**: Call tools in a logical order:
   - Research before rewriting (so sections have sources)
   - Rewrite sections before enrichment (entity links operate on final prose)
   - Validate last (auto-fixes applied)

4. **Be selective**: Not every section needs rewriting. Focus on sections with the most room for improvement. Short sections (<30 words) and terminal sections (Sources, References) should be skipped.

## Important Rules

- **Never rewrite all sections** unless the page is very short. Pick the 3-5 weakest sections.
- **Research is expensive.** Only use `run_research` when citations are genuinely needed. For polish-tier work, skip research entirely.
- **One section at a time.** Each `rewrite_section` call handles one ## section.
- **Track your budget.** Stop when you've used most of your tool calls or the page is good enough.
- **Preserve existing quality.** Don't rewrite sections that are already well-cited and well-written.
- **Keep terminal sections intact.** Don't rewrite Sources, References, See Also, or Related Pages sections.

## When you're done

After making your improvements, call `validate_content` as your final tool call to catch any syntax issues. Then stop. The quality gate will evaluate the result automatically.

If you believe the page is already high-quality and needs minimal changes, you may stop early with just a few targeted improvements. Explain your reasoning in your final text response."""


def build_create_system_prompt(
    topic: str,
    entity_type: str,
    budget: BudgetConfig,
    directions: str = "",
) -> str:
    return f"""You are an expert wiki editor creating a new wiki page about "{topic}" (entity type: {entity_type}).

## Your Task

Create a comprehensive, well-sourced wiki page about "{topic}".
{_directions_line(directions)}

{_budget_block(budget)}

## Strategy for Page Creation

1. **Research first**: Use `run_research` to gather sources about the topic. You'll want 2-3 research calls with different angles.

2. **Check structure**: Use `split_into_sections` to see what sections exist (the page starts with a template).

3. **Write each section**: Use `rewrite_section` on each section, leveraging the source cache from research. Write the most important sections first in case budget runs out.

4. **Enrich**: Run `add_entity_links` and `add_fact_refs` to add structured annotations.

5. **Validate**: End with `validate_content`.

## Important Rules

- **Research before writing.** Every section should cite real sources.
- **Don't fabricate facts.** Only include claims supported by your research sources.
- **Cover all template sections.** The page template has specific sections, so fill each one.
- **Be balanced and objective.** Present multiple perspectives without favoring one.
- **Track your budget.** Write the most important sections first."""


def build_refinement_prompt(
    ctx: OrchestratorContext,
    gap_summary: str,
    metrics: QualityMetrics,
    cycle: int,
) -> str:
    """Follow-up task message listing the gate gaps for refinement *cycle*."""
    return f"""## Quality Gate Feedback (Refinement Cycle {cycle})

The quality gate found the following gaps in the improved page:

{gap_summary}

Current metrics:
- Word count: {metrics.word_count}
- Citations: {metrics.footnote_count}
- EntityLinks: {metrics.entity_link_count}
- Diagrams: {metrics.diagram_count}
- Tables: {metrics.table_count}
- Sections: {metrics.section_count}
- Structural score: {metrics.structural_score}

You have {ctx.remaining_tool_calls} tool calls remaining. Address the most critical gaps. Focus on high-impact changes rather than trying to fix everything."""


__all__ = [
    "build_initial_message",
    "build_create_initial_message",
    "build_improve_system_prompt",
    "build_create_system_prompt",
    "build_refinement_prompt",
]
