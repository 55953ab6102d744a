"""Quality gate for improved pages.

Compares the current page against the original (regression checks) and
against the tier minimums. Evaluation is pure: the same two snapshots and
thresholds always yield the same gap list, in the same order.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from pagesmith.config.orchestrator import OrchestratorConfig, TierThresholds, get_config
from pagesmith.core.orchestrator.context import OrchestratorContext
from pagesmith.core.orchestrator.metrics import extract_quality_metrics
from pagesmith.core.orchestrator.models import (
    BudgetConfig,
    OrchestratorTier,
    QualityGateResult,
    resolve_tier,
)

logger = logging.getLogger(__name__)

ALL_CHECKS_PASSED = "All quality checks passed."


def evaluate_quality_gate(
    current_content: str,
    original_content: str,
    budget: BudgetConfig,
    thresholds: TierThresholds,
    *,
    word_regression_ratio: float = 0.7,
    footnote_regression_ratio: float = 0.8,
) -> QualityGateResult:
    """Evaluate *current_content* against the original and tier minimums.

    Args:
        current_content: Page text after improvement
        original_content: Page text before the run
        budget: Tier budget (a zero research budget skips the citation minimum)
        thresholds: Tier minimums
        word_regression_ratio: Fraction of original words that must remain
        footnote_regression_ratio: Fraction of original citations that must remain

    Returns:
        QualityGateResult whose ``gaps`` is empty exactly when the gate passes
    """
    current = extract_quality_metrics(current_content)
    original = extract_quality_metrics(original_content)
    gaps: list[str] = []

    # Regression against the original
    if current.word_count < original.word_count * word_regression_ratio:
        gaps.append(
            f"Word count dropped from {original.word_count} to {current.word_count} "
            f"(more than {1 - word_regression_ratio:.0%} lost). Restore removed content."
        )
    if current.footnote_count < original.footnote_count * footnote_regression_ratio:
        gaps.append(
            f"Citation count dropped from {original.footnote_count} to {current.footnote_count} "
            f"(more than {1 - footnote_regression_ratio:.0%} lost). Restore removed citations."
        )
    if original.table_count > 0 and current.table_count < original.table_count:
        gaps.append(
            f"Table count dropped from {original.table_count} to {current.table_count}. "
            "Restore the removed tables."
        )

    # Tier minimums
    if current.word_count < thresholds.min_words:
        gaps.append(
            f"Word count below minimum for {budget.name} tier: "
            f"{current.word_count} < {thresholds.min_words}."
        )
    # Skipped when the tier cannot research: no new citations are possible
    if budget.max_research_queries > 0 and current.footnote_count < thresholds.min_footnotes:
        gaps.append(
            f"Citation count below minimum for {budget.name} tier: "
            f"{current.footnote_count} < {thresholds.min_footnotes}."
        )
    if current.entity_link_count < thresholds.min_entity_links:
        gaps.append(
            f"EntityLink count below minimum for {budget.name} tier: "
            f"{current.entity_link_count} < {thresholds.min_entity_links}. Run add_entity_links."
        )
    if current.structural_score < thresholds.min_structural_score:
        gaps.append(
            f"Structural score below minimum for {budget.name} tier: "
            f"{current.structural_score} < {thresholds.min_structural_score}. "
            "Consider adding tables, diagrams or an overview section."
        )

    if current_content == original_content:
        gaps.append("No changes were made to the page content.")

    if gaps:
        gap_summary = "\n".join(f"{i}. {gap}" for i, gap in enumerate(gaps, start=1))
    else:
        gap_summary = ALL_CHECKS_PASSED

    return QualityGateResult(passed=not gaps, metrics=current, gap_summary=gap_summary, gaps=gaps)


def check_context(
    ctx: OrchestratorContext,
    tier: Union[OrchestratorTier, str],
    config: Optional[OrchestratorConfig] = None,
) -> QualityGateResult:
    """Evaluate the gate on a run context with configured thresholds."""
    config = config or get_config()
    return evaluate_quality_gate(
        ctx.current_content,
        ctx.original_content,
        ctx.budget,
        config.thresholds_for(resolve_tier(tier).value),
        word_regression_ratio=config.word_regression_ratio,
        footnote_regression_ratio=config.footnote_regression_ratio,
    )


__all__ = ["ALL_CHECKS_PASSED", "evaluate_quality_gate", "check_context"]
