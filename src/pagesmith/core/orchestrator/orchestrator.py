"""Top-level page orchestrator.

Flow:
    1. Build the run context (page, budget, original content)
    2. Run the agent loop with the tier's tools
    3. Evaluate the quality gate; while it fails and budget remains, feed the
       gaps back and re-run the loop (bounded number of cycles)
    4. Post-process footnotes and stamp ``lastEdited``
    5. Assemble final metrics and the cost breakdown
"""

from __future__ import annotations

import logging
import random
import re
import time
from datetime import date
from pathlib import Path
from typing import Optional, Union

from pagesmith.config.orchestrator import OrchestratorConfig, get_config
from pagesmith.core.errors import MissingContentError
from pagesmith.core.llm_provider import AgentClient
from pagesmith.core.orchestrator.collaborators import Collaborators
from pagesmith.core.orchestrator.context import OrchestratorContext
from pagesmith.core.orchestrator.footnotes import deduplicate_footnotes, renumber_footnotes
from pagesmith.core.orchestrator.loop import AgentLoop
from pagesmith.core.orchestrator.metrics import extract_quality_metrics
from pagesmith.core.orchestrator.models import (
    OrchestratorMode,
    OrchestratorOptions,
    OrchestratorResult,
    PageData,
    get_budget,
    resolve_tier,
)
from pagesmith.core.orchestrator.prompts import (
    build_create_initial_message,
    build_create_system_prompt,
    build_improve_system_prompt,
    build_initial_message,
    build_refinement_prompt,
)
from pagesmith.core.orchestrator.quality_gate import check_context
from pagesmith.core.orchestrator.tools import (
    ToolHandlers,
    build_tool_definitions,
    build_tool_registry,
)
from pagesmith.core.resilience import SleepFunc

logger = logging.getLogger(__name__)

ORCHESTRATOR_LLM_COST_KEY = "orchestrator_llm"

_LAST_EDITED_RE = re.compile(r"""lastEdited:\s*["']?\d{4}-\d{2}-\d{2}["']?""")


def stamp_last_edited(content: str, today: Optional[date] = None) -> str:
    """Set the first ``lastEdited: YYYY-MM-DD`` value to *today*."""
    stamp = (today or date.today()).isoformat()
    return _LAST_EDITED_RE.sub(f'lastEdited: "{stamp}"', content, count=1)


async def run_orchestrator(
    page: PageData,
    file_path: Union[str, Path],
    content: str,
    options: Optional[OrchestratorOptions] = None,
    *,
    agent: AgentClient,
    collaborators: Collaborators,
    config: Optional[OrchestratorConfig] = None,
    rng: Optional[random.Random] = None,
    sleep_func: Optional[SleepFunc] = None,
) -> OrchestratorResult:
    """Improve (or fill) one page with the tool-calling agent.

    Args:
        page: Page identity and metadata
        file_path: Page file on disk, used by the validation tool
        content: Current page text
        options: Tier, directions, mode and model overrides
        agent: Reasoning-agent client
        collaborators: External services the tools delegate to
        config: Orchestrator configuration (defaults to the global config)
        rng: Random source for retry jitter
        sleep_func: Sleep used between agent retries

    Returns:
        OrchestratorResult with the final content, metrics and cost breakdown.
        ``output_path`` is left empty for the caller to fill.

    Raises:
        MissingContentError: If *content* is empty
        ValueError: If the tier is unknown
        LLMError: If the agent service fails beyond the retry budget
    """
    options = options or OrchestratorOptions()
    config = config or get_config()
    tier = resolve_tier(options.tier)
    budget = get_budget(tier)

    if not content or not content.strip():
        raise MissingContentError(f"No content to orchestrate for page '{page.id}'", page_id=page.id)

    orchestrator_model = options.orchestrator_model or config.orchestrator_model
    writer_model = options.writer_model or config.writer_model

    logger.info("Starting orchestrator for '%s'", page.title)
    logger.info(
        "Tier: %s (max %d calls, %d research queries)",
        budget.name,
        budget.max_tool_calls,
        budget.max_research_queries,
    )
    logger.info("Orchestrator model: %s, writer model: %s", orchestrator_model, writer_model)
    if options.directions:
        logger.info("Directions: %s", options.directions)

    started = time.monotonic()

    ctx = OrchestratorContext(
        page=page,
        file_path=Path(file_path),
        content=content,
        budget=budget,
        directions=options.directions,
    )

    handlers = ToolHandlers(ctx, collaborators, writer_model=writer_model, config=config)
    registry = build_tool_registry(handlers, budget.enabled_tools, config.tool_cost_estimates)
    tool_definitions = build_tool_definitions(budget.enabled_tools)

    if options.mode == OrchestratorMode.CREATE:
        topic = options.topic or page.title
        system_prompt = build_create_system_prompt(
            topic, page.entity_type or "wiki-page", budget, options.directions
        )
        task_message = build_create_initial_message(topic)
    else:
        system_prompt = build_improve_system_prompt(ctx)
        task_message = build_initial_message(ctx)

    loop = AgentLoop(
        agent,
        context=ctx,
        system_prompt=system_prompt,
        tools=tool_definitions,
        registry=registry,
        model=orchestrator_model,
        config=config,
        rng=rng,
        sleep_func=sleep_func,
    )

    logger.info("Running main agent loop")
    summary = await loop.run(task_message)
    logger.info("Main loop complete (%d tool calls, ~$%.2f)", ctx.tool_call_count, ctx.total_cost)
    logger.debug("Agent summary: %s", summary[:200])

    # Quality gate and refinement
    refinement_cycles = 0
    max_cycles = config.max_refinement_cycles
    for cycle in range(1, max_cycles + 1):
        if ctx.budget_exhausted:
            logger.info("No tool-call budget remaining for refinement")
            break

        gate = check_context(ctx, tier, config)
        if gate.passed:
            logger.info("Quality gate passed")
            break

        logger.info("Quality gate failed (cycle %d/%d): %d gap(s)", cycle, max_cycles, len(gate.gaps))
        for gap in gate.gaps:
            logger.info("  - %s", gap[:100])

        await loop.run(build_refinement_prompt(ctx, gate.gap_summary, gate.metrics, cycle))
        refinement_cycles += 1
        logger.info("Refinement cycle %d complete (%d total tool calls)", cycle, ctx.tool_call_count)

    # Post-processing
    final_content = renumber_footnotes(deduplicate_footnotes(ctx.current_content))
    ctx.replace_content(stamp_last_edited(final_content))

    final_metrics = extract_quality_metrics(ctx.current_content)
    final_gate = check_context(ctx, tier, config)
    duration = round(time.monotonic() - started, 1)

    cost_breakdown = ctx.cost_breakdown()
    overhead = (1 + refinement_cycles) * config.loop_overhead_cost
    cost_breakdown[ORCHESTRATOR_LLM_COST_KEY] = overhead
    ctx.total_cost += overhead

    logger.info(
        "Orchestrator complete for '%s': %.1fs, %d tool calls, %d refinement cycle(s), ~$%.2f, quality gate %s",
        page.id,
        duration,
        ctx.tool_call_count,
        refinement_cycles,
        ctx.total_cost,
        "PASSED" if final_gate.passed else "FAILED",
    )
    logger.debug("Final metrics: %s", final_metrics.model_dump())

    return OrchestratorResult(
        page_id=page.id,
        title=page.title,
        tier=tier,
        directions=options.directions,
        duration=duration,
        tool_call_count=ctx.tool_call_count,
        refinement_cycles=refinement_cycles,
        total_cost=ctx.total_cost,
        cost_breakdown=cost_breakdown,
        quality_metrics=final_metrics,
        quality_gate_passed=final_gate.passed,
        final_content=ctx.current_content,
    )


__all__ = ["ORCHESTRATOR_LLM_COST_KEY", "run_orchestrator", "stamp_last_edited"]
